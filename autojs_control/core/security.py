"""Operator bearer token helpers."""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from autojs_control.core.config import get_settings
from autojs_control.schemas import TokenData

security = HTTPBearer()

OPERATOR_ROLE = "operator"


def create_access_token(subject: str, role: str = OPERATOR_ROLE, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    expire_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "exp": datetime.now(timezone.utc) + expire_delta,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> TokenData:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="无法验证凭据") from exc

    subject = payload.get("sub")
    role = payload.get("role")
    if not all([subject, role]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="无法验证凭据")
    return TokenData(subject=subject, role=role)


def check_operator_key(api_key: str) -> bool:
    expected = get_settings().security.operator_api_key
    if not expected:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), api_key.encode("utf-8"))


async def get_current_operator(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TokenData:
    token_data = decode_access_token(credentials.credentials)
    if token_data.role != OPERATOR_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="需要操作员权限")
    return token_data
