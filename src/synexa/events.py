"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

提醒生命周期中的关键节点都会发出事件，运行时指标等旁路逻辑通过订阅事件实现，
与投递主流程解耦。处理器可以是同步函数，也可以是协程函数(需要运行中的事件循环)。
事件参数一律使用关键字参数。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Awaitable, Callable, Union

from synexa.logger import logger

Handler = Callable[..., Union[None, Awaitable[None]]]


# 事件名集中定义
class E:
    REMINDER_CREATED = "reminder.created"        # reminder=
    REMINDER_CANCELLED = "reminder.cancelled"    # reminder=
    REMINDER_SENT = "reminder.sent"              # reminder=
    REMINDER_FAILED = "reminder.failed"          # reminder=, error=
    REMINDER_RECURRED = "reminder.recurred"      # reminder=(新提醒), previous=
    ENRICHMENT_FAILED = "reminder.enrichment_failed"  # kind=
    BATCH_FINISHED = "reminder.batch_finished"   # report=, duration_ms=, skipped=


class Bus(AsyncIOEventEmitter):
    def on(self, event: str) -> Callable[[Handler], Handler]:
        """注册事件处理器装饰器"""
        def decorator(handler: Handler) -> Handler:
            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()


# 旁路处理器出错不能影响投递流程: pyee 在没有 error 处理器时会把异常重新抛给 emit 的调用方
@bus.on("error")
def _on_handler_error(exc: BaseException) -> None:
    logger.opt(exception=exc).error(f"事件处理器异常: {exc!r}")


__all__ = ["bus", "E"]
