"""
Pipeline events.

The withdrawal pipeline never prints or formats output itself. It emits a
WithdrawalEvent at each stage transition and hands it to an EventSink. The
default sink writes events to the stdlib logger; callers can pass any
callable (a UI progress bar, a metrics counter, a test recorder).

Events must never carry key material, nullifiers or secrets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger("privacy_pool.events")


class PipelineStage(str, Enum):
    """Ordered states of one withdrawal preparation."""
    STARTED = "started"
    VALIDATED = "validated"
    DATA_FETCHED = "data_fetched"
    CONTEXT_READY = "context_ready"
    PROOF_READY = "proof_ready"
    TRANSACTION_READY = "transaction_ready"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass(frozen=True)
class WithdrawalEvent:
    stage: PipelineStage
    message: str
    fields: dict[str, Any] = field(default_factory=dict)


EventSink = Callable[[WithdrawalEvent], None]


class LoggingEventSink:
    """Render pipeline events through `logging`."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def __call__(self, event: WithdrawalEvent) -> None:
        detail = ", ".join(f"{k}={v}" for k, v in event.fields.items())
        text = f"[{event.stage.value}] {event.message}" + (f" ({detail})" if detail else "")
        if event.stage is PipelineStage.FAILED:
            self._log.error(text)
        else:
            self._log.info(text)


class RecordingEventSink:
    """Keep every event in memory. Useful for previews and tests."""

    def __init__(self) -> None:
        self.events: list[WithdrawalEvent] = []

    def __call__(self, event: WithdrawalEvent) -> None:
        self.events.append(event)

    @property
    def stages(self) -> list[PipelineStage]:
        return [e.stage for e in self.events]
