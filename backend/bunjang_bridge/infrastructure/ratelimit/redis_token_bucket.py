from __future__ import annotations
import logging
from typing import Optional, Tuple

import redis


logger = logging.getLogger(__name__)


"""
全局令牌桶限流（多 worker / 多机共享同一个 Bunjang 账号额度），单位：rpm。
    key: {prefix}:{env}:{vendor}:{account}

    acquire_once() 原子步骤（Lua）：
      1) 用 Redis 服务器时间（TIME）计算补桶
      2) tokens >= 1 则消耗 1 个并 allowed=1；否则返回需要等待的毫秒 wait_ms
      3) 持久化 tokens/ts，并设置 TTL（空闲自动清理）
"""
class RedisTokenBucketLimiter:

    LUA_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local refill_per_ms = tonumber(ARGV[2])
    local ttl_ms = tonumber(ARGV[3])

    local t = redis.call('TIME')
    local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)

    local data = redis.call('HMGET', key, 'tokens', 'ts')
    local tokens = tonumber(data[1])
    local ts = tonumber(data[2])

    if tokens == nil or ts == nil then
        tokens = capacity
        ts = now
    else
        local delta = now - ts
        if delta < 0 then delta = 0 end
        tokens = math.min(capacity, tokens + delta * refill_per_ms)
        ts = now
    end

    local allowed = 0
    local wait_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        wait_ms = math.ceil((1 - tokens) / refill_per_ms)
        if wait_ms < 0 then wait_ms = 0 end
    end

    redis.call('HSET', key, 'tokens', tokens, 'ts', ts)
    if ttl_ms > 0 then
      redis.call('PEXPIRE', key, ttl_ms)
    end
    return {allowed, tokens, wait_ms}
    """


    def __init__(self, client, key: str, max_rpm: int, burst: int = 5,
                 ttl_ms: int = 120000, max_wait_ms: Optional[int] = 5000):
        self.r = client
        self.key = key
        self.capacity = max(1, int(burst))
        self.refill_per_ms = float(max_rpm) / 60_000.0
        self.ttl_ms = int(ttl_ms)
        self.max_wait_ms = max_wait_ms
        self._sha = self.r.script_load(self.LUA_SCRIPT)


    @classmethod
    def from_settings(cls, *, vendor: str, account: str | None) -> RedisTokenBucketLimiter | None:
        """按 BUNJANG_GLOBAL_RL_* 配置构造；未开启或没配 URL 返回 None（调用方走进程内节流）。"""
        from bunjang_bridge.core.config import settings

        if not settings.BUNJANG_GLOBAL_RL_ENABLED:
            return None

        url = settings.BUNJANG_GLOBAL_RATE_LIMIT_REDIS_URL
        if not url:
            logger.warning("Global RL disabled (no redis url).")
            return None

        r = redis.from_url(url, decode_responses=True)
        acct = (account or "account").replace(":", "_")
        key = f"{settings.BUNJANG_GLOBAL_RL_KEY_PREFIX}:{settings.ENVIRONMENT}:{vendor}:{acct}"

        return cls(
            client=r,
            key=key,
            max_rpm=int(settings.BUNJANG_GLOBAL_RL_MAX_RPM),
            burst=int(settings.BUNJANG_GLOBAL_RL_BURST),
        )


    def _eval(self) -> Tuple[bool, int]:
        try:
            res = self.r.evalsha(self._sha, 1, self.key, self.capacity, self.refill_per_ms, self.ttl_ms)
        except redis.exceptions.NoScriptError:
            # Redis 重启后脚本缓存丢失：重载一次再试
            self._sha = self.r.script_load(self.LUA_SCRIPT)
            res = self.r.evalsha(self._sha, 1, self.key, self.capacity, self.refill_per_ms, self.ttl_ms)
        allowed = int(res[0]) == 1
        wait_ms = 0 if allowed else max(0, int(float(res[2])))
        if (self.max_wait_ms is not None) and (wait_ms > self.max_wait_ms):
            wait_ms = self.max_wait_ms
        return allowed, wait_ms


    def acquire_once(self) -> tuple[bool, int]:
        """
        尝试消费 1 个令牌；返回 (allowed, wait_ms)。
        - allowed=True：允许立即发请求
        - allowed=False：建议等待 wait_ms 毫秒后再试
        """
        return self._eval()
