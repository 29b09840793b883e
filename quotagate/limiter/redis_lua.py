"""Redis Lua scripts for the distributed counter store.

Redis runs each script atomically, which gives the compare-and-swap
semantics the rate limiter needs across processes: no other client can
write the key between the read and the write inside a script.
"""

# Return the stored state, creating it from ARGV[1] when the key is absent.
# A state created here has no TTL yet; the limiter sets one after its first
# successful swap.
LOAD_OR_INIT_SCRIPT = """
    local state_key = KEYS[1]
    local initial_state = ARGV[1]

    local current = redis.call('GET', state_key)
    if current then
        return current
    end

    redis.call('SET', state_key, initial_state)
    return initial_state
"""

# Replace the stored state with ARGV[2] only if it still equals ARGV[1].
# States are compared as canonical JSON strings. KEEPTTL (Redis >= 6.0)
# preserves the idle TTL set by PEXPIRE.
COMPARE_AND_SWAP_SCRIPT = """
    local state_key = KEYS[1]
    local expected_state = ARGV[1]
    local new_state = ARGV[2]

    local current = redis.call('GET', state_key)
    if current ~= expected_state then
        return 0
    end

    redis.call('SET', state_key, new_state, 'KEEPTTL')
    return 1
"""
