from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
from redis.asyncio import Redis
from app.config import settings
from app.routers import admin
from app.routers import properties
from app.services.errors import AccessControlError
from structlog import get_logger

logger = get_logger()

app = FastAPI(title="Property Listings Service")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])

redis_client: Redis | None = None

@app.on_event("startup")
async def startup_event():
    global redis_client
    redis_client = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    await FastAPILimiter.init(redis_client)

@app.on_event("shutdown")
async def shutdown_event():
    await FastAPILimiter.close()
    if redis_client:
        await redis_client.close()

@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError):
    logger.info("Request refused", path=request.url.path, error=type(exc).__name__, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

app.include_router(properties.router)
app.include_router(admin.router)

@app.get("/health")
async def root_health():
    return "ok"
