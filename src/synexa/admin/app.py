from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

import synexa.storage.db_config as db_config
import synexa.storage.user as user_storage
from synexa.core.engine import require_engine
from synexa.core.errors import ReminderError, ReminderNotFoundError, ReminderStateError, ReminderValidationError
from synexa.datamodel import ReminderStatus
from synexa.logger import logger
from synexa.metrics import runtime_metrics

from .auth import require_admin_auth, require_cron_auth
from .schemas import (
    ReminderCreateRequest,
    ReminderUpdateRequest,
    RuntimeControl,
    SuggestedRemindersRequest,
    UserOriginRequest,
)

_ERROR_STATUS: list[tuple[type[ReminderError], int]] = [
    (ReminderValidationError, 400),
    (ReminderNotFoundError, 404),
    (ReminderStateError, 409),
]


def _status_for(exc: ReminderError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


def _parse_status(raw: str | None) -> ReminderStatus | None:
    if raw is None or raw == "":
        return None
    try:
        return ReminderStatus(raw.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"未知的提醒状态: {raw}")


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="Synexa Reminder API", version="1.0.0")

    @app.exception_handler(ReminderError)
    async def reminder_error_handler(request: Request, exc: ReminderError) -> JSONResponse:
        status_code = _status_for(exc)
        logger.debug(f"请求被拒绝: {request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await require_admin_auth(request)

        reminder_status = {"running": False, "last_check_at_epoch": None}
        try:
            from synexa.world.reminder import get_status as get_reminder_status

            reminder_status.update(get_reminder_status())
        except Exception as e:
            logger.warning(f"读取 Reminder 状态失败: {e}")

        channels: list[str] = []
        try:
            channels = sorted(channel.value for channel in require_engine().channels)
        except RuntimeError as e:
            logger.warning(f"读取通道配置失败: {e}")

        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "reminder_loop": reminder_status,
                "channels": channels,
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    # ----------------- 提醒 ----------------
    @app.get("/api/v1/reminders")
    async def list_reminders(
        request: Request,
        user_id: int,
        status: str | None = None,
        calendar_event_id: int | None = None,
    ) -> dict[str, Any]:
        await require_admin_auth(request)
        reminders = await require_engine().list_reminders(user_id, _parse_status(status), calendar_event_id)
        return {"items": [r.to_dict() for r in reminders], "total": len(reminders)}

    @app.post("/api/v1/reminders", status_code=201)
    async def create_reminder(payload: ReminderCreateRequest, request: Request) -> dict[str, Any]:
        await require_admin_auth(request)
        reminder = await require_engine().create_reminder(payload.to_input())
        return reminder.to_dict()

    @app.post("/api/v1/reminders/process")
    async def process_reminders(request: Request) -> dict[str, Any]:
        auth_info = await require_cron_auth(request)
        logger.info(f"收到批处理触发请求: by={auth_info['user']}")
        report = await require_engine().run_due_reminders()
        return report.to_dict()

    @app.get("/api/v1/reminders/suggestions")
    async def list_suggestions(request: Request, user_id: int, horizon_days: int | None = None) -> dict[str, Any]:
        await require_admin_auth(request)
        suggestions = await require_engine().list_suggestions(user_id, horizon_days)
        return {"suggestions": [s.to_dict() for s in suggestions]}

    @app.post("/api/v1/reminders/suggestions", status_code=201)
    async def create_suggested_reminders(payload: SuggestedRemindersRequest, request: Request) -> dict[str, Any]:
        await require_admin_auth(request)
        created = await require_engine().create_suggested_reminders(
            payload.user_id, payload.event_id, payload.minutes_before
        )
        return {"created": len(created), "items": [r.to_dict() for r in created]}

    @app.patch("/api/v1/reminders/{reminder_id}")
    async def update_reminder(
        reminder_id: int,
        user_id: int,
        payload: ReminderUpdateRequest,
        request: Request,
    ) -> dict[str, Any]:
        await require_admin_auth(request)
        reminder = await require_engine().update_reminder(reminder_id, user_id, payload.to_update())
        return reminder.to_dict()

    @app.delete("/api/v1/reminders/{reminder_id}")
    async def cancel_reminder(reminder_id: int, user_id: int, request: Request) -> dict[str, Any]:
        await require_admin_auth(request)
        reminder = await require_engine().cancel_reminder(reminder_id, user_id)
        return reminder.to_dict()

    # ----------------- 用户 ----------------
    @app.put("/api/v1/users/{user_id}/origin")
    async def update_user_origin(user_id: int, payload: UserOriginRequest, request: Request) -> dict[str, Any]:
        await require_admin_auth(request)
        if (payload.origin_lat is None) != (payload.origin_lng is None):
            raise HTTPException(status_code=400, detail="origin_lat 与 origin_lng 必须同时提供")
        if await user_storage.get_user_by_id(user_id) is None:
            raise ReminderNotFoundError(f"用户不存在: user_id={user_id}")
        await user_storage.update_user_origin(user_id, payload.origin_address, payload.origin_lat, payload.origin_lng)
        return {
            "user_id": user_id,
            "origin_address": payload.origin_address,
            "origin_lat": payload.origin_lat,
            "origin_lng": payload.origin_lng,
        }

    return app
