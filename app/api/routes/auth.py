import logging

from fastapi import APIRouter, HTTPException, status

from app.api.schemas.auth import AdminLoginRequest, AdminLoginResponse
from app.core.security import create_access_token, verify_admin_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/login", response_model=AdminLoginResponse)
async def admin_login(body: AdminLoginRequest) -> AdminLoginResponse:
    if not verify_admin_password(body.password):
        logger.info("Admin login rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid password",
        )
    return AdminLoginResponse(token=create_access_token("admin"))
