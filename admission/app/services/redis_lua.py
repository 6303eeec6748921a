"""Redis Lua scripts for the admission stores.

Scripts run atomically on the Redis server, so concurrent callers can never
observe a counter that was incremented but not yet given its TTL.
"""

# Atomic increment-with-TTL for fixed-window counters.
# The TTL is applied when the key is created by this INCR, or repaired if a
# previous writer left the key without one (TTL == -1).
# Returns {post_increment_count, remaining_ttl_seconds}.
INCREMENT_WITH_TTL_SCRIPT = """
    local counter_key = KEYS[1]
    local ttl = tonumber(ARGV[1])

    local count = redis.call('INCR', counter_key)
    local remaining = redis.call('TTL', counter_key)

    if count == 1 or remaining < 0 then
        redis.call('EXPIRE', counter_key, ttl)
        remaining = ttl
    end

    return {count, remaining}
"""
