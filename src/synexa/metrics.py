"""
一个简单的运行时指标收集类，通过事件总线统计提醒的投递情况，方便后续扩展和监控。
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from synexa.events import E, bus


@dataclass
class RuntimeMetrics:
    batch_count: int = 0
    reminder_created_count: int = 0
    reminder_cancelled_count: int = 0
    reminder_sent_count: int = 0
    reminder_failed_count: int = 0
    reminder_skipped_count: int = 0
    successor_created_count: int = 0
    enrichment_failure_count: int = 0
    last_batch_at: float | None = None
    last_batch_duration_ms: float = 0.0

    def record_batch(self, duration_ms: float, skipped: int = 0) -> None:
        self.batch_count += 1
        self.reminder_skipped_count += max(0, skipped)
        self.last_batch_duration_ms = max(0.0, duration_ms)
        self.last_batch_at = time.time()

    def record_created(self) -> None:
        self.reminder_created_count += 1

    def record_cancelled(self) -> None:
        self.reminder_cancelled_count += 1

    def record_sent(self) -> None:
        self.reminder_sent_count += 1

    def record_failed(self) -> None:
        self.reminder_failed_count += 1

    def record_successor(self) -> None:
        self.successor_created_count += 1

    def record_enrichment_failure(self) -> None:
        self.enrichment_failure_count += 1

    def snapshot(self) -> dict:
        return {
            "batch_count": self.batch_count,
            "reminder_created_count": self.reminder_created_count,
            "reminder_cancelled_count": self.reminder_cancelled_count,
            "reminder_sent_count": self.reminder_sent_count,
            "reminder_failed_count": self.reminder_failed_count,
            "reminder_skipped_count": self.reminder_skipped_count,
            "successor_created_count": self.successor_created_count,
            "enrichment_failure_count": self.enrichment_failure_count,
            "last_batch_duration_ms": round(self.last_batch_duration_ms, 2),
            "last_batch_at_epoch": self.last_batch_at,
            "last_batch_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_batch_at))
                if self.last_batch_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


@bus.on(E.REMINDER_CREATED)
def _on_created(**_kwargs) -> None:
    runtime_metrics.record_created()


@bus.on(E.REMINDER_CANCELLED)
def _on_cancelled(**_kwargs) -> None:
    runtime_metrics.record_cancelled()


@bus.on(E.REMINDER_SENT)
def _on_sent(**_kwargs) -> None:
    runtime_metrics.record_sent()


@bus.on(E.REMINDER_FAILED)
def _on_failed(**_kwargs) -> None:
    runtime_metrics.record_failed()


@bus.on(E.REMINDER_RECURRED)
def _on_recurred(**_kwargs) -> None:
    runtime_metrics.record_successor()


@bus.on(E.ENRICHMENT_FAILED)
def _on_enrichment_failed(**_kwargs) -> None:
    runtime_metrics.record_enrichment_failure()


@bus.on(E.BATCH_FINISHED)
def _on_batch_finished(duration_ms: float = 0.0, skipped: int = 0, **_kwargs) -> None:
    runtime_metrics.record_batch(duration_ms, skipped)


__all__ = ["RuntimeMetrics", "runtime_metrics"]
