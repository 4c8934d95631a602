"""Redis Lua scripts for the counter store.

The strategies do read-decide-write cycles; these scripts make the write
conditional on the value that was read, in a single atomic round trip.
"""

# KEYS[1]  record key
# ARGV[1]  "1" when a previous value is expected, "0" when the key must be absent
# ARGV[2]  expected serialized record (ignored when ARGV[1] == "0")
# ARGV[3]  new serialized record
# ARGV[4]  ttl in seconds
COMPARE_AND_SET_SCRIPT = """
    local current = redis.call('GET', KEYS[1])

    if ARGV[1] == '1' then
        if current ~= ARGV[2] then
            return 0
        end
    elseif current then
        return 0
    end

    redis.call('SET', KEYS[1], ARGV[3], 'EX', tonumber(ARGV[4]))
    return 1
"""
