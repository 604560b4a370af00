"""
认证与授权模块
令牌由上游认证服务签发，这里只负责解码并识别调用方身份与角色
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from hotel_booking.config import settings
from hotel_booking.models.entities import UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.MANAGER, UserRole.FRONT_OFFICE})


@dataclass
class CallerIdentity:
    """调用方身份"""
    user_id: int
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def create_access_token(user_id: int, role: UserRole) -> str:
    """创建 JWT token"""
    expire = datetime.now(UTC) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(user_id),
        "role": role.value if isinstance(role, UserRole) else str(role),
        "exp": expire
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


def _identity_from_payload(payload: dict) -> CallerIdentity:
    try:
        return CallerIdentity(user_id=int(payload.get("sub")), role=UserRole(payload.get("role")))
    except (TypeError, ValueError):
        logger.warning(f"Token payload rejected: sub={payload.get('sub')} role={payload.get('role')}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CallerIdentity:
    """获取当前登录用户"""
    return _identity_from_payload(decode_token(credentials.credentials))


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security)
) -> Optional[CallerIdentity]:
    """可选登录：匿名访客返回 None"""
    if credentials is None:
        return None
    return _identity_from_payload(decode_token(credentials.credentials))


async def require_staff(current_user: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
    """仅限员工（管理员 / 经理 / 前台）"""
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="权限不足"
        )
    return current_user
