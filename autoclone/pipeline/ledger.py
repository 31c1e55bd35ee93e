"""
Append-only record of stage outcomes for one run.
"""

import time
import logging
from typing import Any, Optional

from .models import StepResult

logger = logging.getLogger(__name__)


class StepHandle:
    """An open ledger slot: the stage name plus its start time."""

    __slots__ = ("step", "started_at", "committed")

    def __init__(self, step: str):
        self.step = step
        self.started_at = time.monotonic()
        self.committed = False

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class StepLedger:
    """
    Usage:
        handle = ledger.begin("script")
        ...
        ledger.commit(handle, success=True, data={"wordCount": 3000})

    Each handle commits exactly once. Entries are never changed afterwards.
    """

    def __init__(self):
        self._entries: list[StepResult] = []

    def begin(self, step: str) -> StepHandle:
        return StepHandle(step)

    def commit(
        self,
        handle: StepHandle,
        success: bool,
        error: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
        duration: Optional[int] = None,
    ) -> StepResult:
        if handle.committed:
            raise RuntimeError(f"Step '{handle.step}' was already committed")
        handle.committed = True

        entry = StepResult(
            step=handle.step,
            success=success,
            duration=handle.elapsed_ms() if duration is None else duration,
            error=error,
            data=data,
        )
        self._entries.append(entry)

        if success:
            logger.info(f"Step {entry.step} ok in {entry.duration}ms")
        else:
            logger.info(f"Step {entry.step} failed in {entry.duration}ms: {error}")
        return entry

    @property
    def entries(self) -> list[StepResult]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
