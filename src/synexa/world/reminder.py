"""提醒周期循环

每隔 REMINDER_CHECK_INTERVAL_SECONDS 触发一次投递批处理。
外部 cron 通过 HTTP 接口触发时，可以用 ENABLE_REMINDER_LOOP=false 关闭本循环。
"""

import asyncio
import time

from synexa.config.settings import REMINDER_CHECK_INTERVAL_SECONDS
from synexa.core.engine import require_engine
from synexa.logger import logger

__all__ = ["main_loop", "get_status"]

__shutdown_event: asyncio.Event | None = None
__last_check_at_epoch: float | None = None


def get_status() -> dict[str, object]:
    running = __shutdown_event is not None and not __shutdown_event.is_set()
    return {
        "running": running,
        "last_check_at_epoch": __last_check_at_epoch,
    }


async def main_loop(shutdown_event: asyncio.Event, interval_seconds: float = REMINDER_CHECK_INTERVAL_SECONDS):
    global __shutdown_event, __last_check_at_epoch
    __shutdown_event = shutdown_event
    logger.info(f"Reminder 主循环已启动, 间隔 {interval_seconds}s")

    while not shutdown_event.is_set():
        __last_check_at_epoch = time.time()
        try:
            await require_engine().run_due_reminders()
        except Exception as e:
            logger.error("提醒批处理异常, 等待下一轮", exc_info=e)

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass

    logger.info("Reminder 主循环已关闭")
