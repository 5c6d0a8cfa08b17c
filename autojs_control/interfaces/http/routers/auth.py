"""Operator token endpoint."""
from fastapi import APIRouter, HTTPException, status

from autojs_control.core.config import get_settings
from autojs_control.core.security import check_operator_key, create_access_token
from autojs_control.schemas import Token, TokenRequest

router = APIRouter()


@router.post("/token", response_model=Token, summary="操作员获取访问令牌")
async def issue_token(payload: TokenRequest) -> Token:
    settings = get_settings()
    if not settings.security.operator_api_key:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="未配置操作员密钥")
    if not check_operator_key(payload.api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="操作员密钥错误")
    token = create_access_token(payload.operator)
    return Token(access_token=token, expires_in=settings.access_token_expire_minutes * 60)
