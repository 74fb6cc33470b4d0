from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

import synexa.config.settings as settings
from synexa.logger import logger

if not settings.ADMIN_AUTH_TOKEN:
    logger.warning("未配置 ADMIN_AUTH_TOKEN，提醒 API 将不可访问")


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    token_header = request.headers.get("X-Synexa-Token", "").strip()
    return token_header or None


def _matches(token: str | None, expected: str) -> bool:
    return bool(token and expected and hmac.compare_digest(token, expected))


async def require_admin_auth(request: Request) -> dict[str, str]:
    if not settings.ADMIN_AUTH_TOKEN:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    if _matches(extract_token(request), settings.ADMIN_AUTH_TOKEN):
        return {"auth": "token", "user": "admin-token"}

    raise HTTPException(status_code=401, detail="未授权")


async def require_cron_auth(request: Request) -> dict[str, str]:
    """批处理触发接口: 接受 CRON_SECRET 或管理 token"""
    if not settings.CRON_SECRET and not settings.ADMIN_AUTH_TOKEN:
        raise HTTPException(status_code=503, detail="CRON_SECRET 与 ADMIN_AUTH_TOKEN 均未配置")

    token = extract_token(request)
    if _matches(token, settings.CRON_SECRET):
        return {"auth": "cron", "user": "cron"}
    if _matches(token, settings.ADMIN_AUTH_TOKEN):
        return {"auth": "token", "user": "admin-token"}

    raise HTTPException(status_code=401, detail="未授权")
