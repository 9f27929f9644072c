from fastapi import HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from app.config import settings
from app.services.access import CallerContext
from httpx import AsyncClient
from structlog import get_logger

# Build the verify URL whether USER_MANAGEMENT_URL already includes '/api/v1' or not
_um_base = settings.USER_MANAGEMENT_URL.rstrip("/")
_has_v1 = _um_base.endswith("/api/v1")
_login_path = "/auth/login" if _has_v1 else "/api/v1/auth/login"
_verify_path = "/auth/verify" if _has_v1 else "/api/v1/auth/verify"

# Anonymous requests are allowed through; operations that need identity reject them later
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{_um_base}{_login_path}", auto_error=False)
logger = get_logger()

async def verify_token(token: str) -> dict:
    """Verify a bearer token with the user management service and return its user payload."""
    async with AsyncClient(timeout=30.0) as client:
        # Preferred: POST JSON {"token": token}
        resp = await client.post(f"{_um_base}{_verify_path}", json={"token": token})
        logger.info("Verify attempt JSON", upstream=f"{_um_base}{_verify_path}", status_code=resp.status_code)
        # Some services expect the Authorization header on a GET
        if resp.status_code in (400, 404, 405, 415, 422):
            resp = await client.get(f"{_um_base}{_verify_path}", headers={"Authorization": f"Bearer {token}"})
            logger.info("Verify attempt GET Bearer", upstream=f"{_um_base}{_verify_path}", status_code=resp.status_code)
    if resp.status_code != 200:
        logger.warning("Verify failed", upstream=f"{_um_base}{_verify_path}", status_code=resp.status_code)
        raise HTTPException(status_code=401, detail="Invalid token")
    data = resp.json() if resp.headers.get("content-type", "").startswith("application/json") else {}
    # Accept either {user: {...}} or flat {...}
    user = data.get("user", data) if isinstance(data, dict) else {}
    if not isinstance(user, dict):
        logger.warning("Verify returned no user object", upstream=f"{_um_base}{_verify_path}")
        raise HTTPException(status_code=401, detail="Invalid token")
    uid = user.get("id") or user.get("_id") or user.get("user_id") or user.get("sub") or user.get("uid")
    return {"id": uid, "role": str(user.get("role") or "").lower()}

async def get_caller_context(token: str | None = Depends(oauth2_scheme)) -> CallerContext:
    if not token:
        return CallerContext.anonymous()
    user = await verify_token(token)
    return CallerContext.from_claims(user["id"], user["role"])
