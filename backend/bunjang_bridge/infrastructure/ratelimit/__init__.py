"""
  Rate limit infrastructure utilities.
     from bunjang_bridge.infrastructure.ratelimit import RedisTokenBucketLimiter
"""
from .redis_token_bucket import RedisTokenBucketLimiter

__all__ = ["RedisTokenBucketLimiter"]
