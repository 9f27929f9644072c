from fastapi_limiter.depends import RateLimiter
from app.config import settings

# Shared limiter for property writes; keyed by client address in redis
write_limiter = RateLimiter(times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS)
