from __future__ import annotations

import asyncio
import time

import uvicorn

from synexa.config.settings import ADMIN_AUTH_TOKEN, ADMIN_HTTP_HOST, ADMIN_HTTP_PORT, CRON_SECRET
from synexa.logger import logger

from .app import create_app
from .schemas import RuntimeControl


def _build_server(shutdown_event: asyncio.Event, host: str, port: int) -> uvicorn.Server:
    app = create_app(RuntimeControl(shutdown_event=shutdown_event, started_at=time.time()))
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
        lifespan="off",
        timeout_graceful_shutdown=5,
    ))
    # 系统信号由 main.py 统一处理
    server.install_signal_handlers = lambda: None
    return server


async def main_loop(
    shutdown_event: asyncio.Event,
    host: str = ADMIN_HTTP_HOST,
    port: int = ADMIN_HTTP_PORT,
) -> None:
    server = _build_server(shutdown_event, host, port)

    async def _stop_on_shutdown() -> None:
        await shutdown_event.wait()
        server.should_exit = True

    stopper = asyncio.create_task(_stop_on_shutdown())
    logger.info(f"提醒 HTTP 服务启动: http://{host}:{port} "
                f"(admin token: {'已配置' if ADMIN_AUTH_TOKEN else '未配置'}, "
                f"cron secret: {'已配置' if CRON_SECRET else '未配置'})")
    try:
        await server.serve()
    finally:
        stopper.cancel()
        try:
            await stopper
        except asyncio.CancelledError:
            pass
        logger.info("提醒 HTTP 服务已关闭")
