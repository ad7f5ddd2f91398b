"""
Lua scripts yang dijalankan secara atomic oleh Redis.

Setiap compare-then-act harus berjalan sebagai satu script di server.
Read di client lalu write terpisah membuka race: lock milik owner lain
bisa terhapus di antara GET dan DEL.
"""

# KEYS[1] = lock name, ARGV[1] = token
# Returns 1 jika token cocok dan key terhapus, 0 otherwise
UNLOCK_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""

# KEYS[1] = lock name, ARGV[1] = token, ARGV[2] = ttl (ms)
# Returns 1 jika token cocok dan expiry diperpanjang, 0 otherwise
RENEWAL_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('pexpire', KEYS[1], ARGV[2])
else
    return 0
end
"""

# KEYS[1] = limiter name, ARGV[1] = window (seconds), ARGV[2] = permits
# Returns 1 jika admitted, 0 jika rejected. Rejected request tetap dihitung.
RATE_LIMITER_SCRIPT = """
local count = redis.call('incr', KEYS[1])
if count == 1 or redis.call('ttl', KEYS[1]) == -1 then
    redis.call('expire', KEYS[1], ARGV[1])
end
if count <= tonumber(ARGV[2]) then
    return 1
end
return 0
"""

# KEYS[1] = bucket name
# ARGV[1] = capacity, ARGV[2] = refill rate (permits/second),
# ARGV[3] = now (ms), ARGV[4] = requested permits, ARGV[5] = initial permits
# Returns jumlah permits yang diberikan
TOKEN_BUCKET_SCRIPT = """
local capacity = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local requested = tonumber(ARGV[4])

local state = redis.call('hmget', KEYS[1], 'tokens', 'timestamp')
local tokens = tonumber(state[1])
local timestamp = tonumber(state[2])

if tokens == nil or timestamp == nil then
    tokens = tonumber(ARGV[5])
    timestamp = now
end

local elapsed = math.max(0, now - timestamp)
local available = math.min(capacity, tokens + elapsed * rate / 1000)
local granted = math.max(0, math.min(requested, math.floor(available)))

redis.call('hset', KEYS[1],
    'tokens', tostring(available - granted),
    'timestamp', tostring(math.max(now, timestamp)))

return granted
"""
