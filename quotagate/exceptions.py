"""Custom exceptions for the admission-control engine."""


class QuotaGateException(Exception):
    """Base class for quotagate exceptions with HTTP status code.

    All custom exceptions inherit from this class and define their
    specific status_code so a transport layer can map them consistently.
    """
    status_code: int = 500

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class BackendUnavailable(QuotaGateException):
    """Raised when the counter store cannot complete an atomic operation.

    Covers network failures, timeouts and deadlines exceeded while waiting
    for the store. Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, detail: str = "Counter store unavailable", backend: str | None = None):
        self.detail = detail
        self.backend = backend
        message = detail if backend is None else f"{detail} (backend={backend})"
        super().__init__(message)


class TooMuchContention(QuotaGateException):
    """Raised when the compare-and-swap retry budget for a key is exhausted.

    Maps to HTTP 429 Too Many Requests when surfaced.
    """
    status_code = 429

    def __init__(self, key: str, attempts: int):
        self.key = key
        self.attempts = attempts
        super().__init__(f"Compare-and-swap failed {attempts} times in a row")


class InvalidCost(QuotaGateException):
    """Raised when a request cost is not a positive finite integer.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, cost: object):
        self.cost = cost
        super().__init__(f"Cost must be a positive integer, got {cost!r}")


class InvalidKey(QuotaGateException):
    """Raised when a limiter key is empty or not a string.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, detail: str = "Limiter key must be a non-empty string"):
        self.detail = detail
        super().__init__(detail)


class StateDecodeError(QuotaGateException):
    """Raised when a stored counter state cannot be decoded."""
    status_code = 500

    def __init__(self, detail: str = "Malformed counter state"):
        self.detail = detail
        super().__init__(detail)


class PolicyError(QuotaGateException):
    """Raised when configured rate limit settings do not form a valid policy.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, detail: str = "Invalid quota policy"):
        self.detail = detail
        super().__init__(detail)
