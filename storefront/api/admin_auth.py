# storefront/api/admin_auth.py

import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from storefront.config import settings
from storefront.constants import DEFAULT_ADMIN_ID
from storefront.redeem import AdminIdentity


async def require_admin(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    x_admin_id: Optional[str] = Header(default=None, alias="X-Admin-Id"),
) -> AdminIdentity:
    """
    Проверка админа по общему токену.
    Логин/пароли/сессии живут снаружи: сюда приходит уже готовый токен и id админа.
    """
    if not settings.ADMIN_API_TOKEN:
        # забыли настроить токен: админку не открываем вообще
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="admin_token_not_configured",
        )

    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"),
        settings.ADMIN_API_TOKEN.encode("utf-8"),
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required",
        )

    admin_id = (x_admin_id or "").strip()[:64] or DEFAULT_ADMIN_ID
    return AdminIdentity(admin_id=admin_id)
