"""
LIFO cleanup stack.

Every acquired resource pushes its release action right after acquisition.
unwind() runs the actions newest-first, each exactly once, and keeps going
when one of them fails so that earlier resources are still released.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


@dataclass
class CleanupEntry:
    name: str
    action: Callable[[], Any]


@dataclass
class UnwindResult:
    """Outcome of one unwind() call."""
    executed: List[str]
    errors: List[str]

    @property
    def success(self) -> bool:
        return not self.errors


class CleanupStack:
    def __init__(self):
        self._entries: List[CleanupEntry] = []
        self._unwound = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> List[str]:
        """Entry names in acquisition order."""
        return [entry.name for entry in self._entries]

    def push(self, name: str, action: Callable[[], Any]) -> None:
        """Record a zero-argument release action (sync or async)."""
        if self._unwound:
            raise RuntimeError(f"cannot push '{name}': cleanup stack already unwound")
        self._entries.append(CleanupEntry(name=name, action=action))
        logger.debug(f"[Cleanup] Registered '{name}' ({len(self._entries)} pending)")

    async def unwind(self) -> UnwindResult:
        """Run every pending action in reverse order of push."""
        executed: List[str] = []
        errors: List[str] = []
        self._unwound = True

        while self._entries:
            entry = self._entries.pop()
            logger.info(f"[Cleanup] Releasing {entry.name}")
            try:
                result = entry.action()
                if inspect.isawaitable(result):
                    await result
                executed.append(entry.name)
            except Exception as e:
                error_msg = f"Release of '{entry.name}' failed: {e}"
                errors.append(error_msg)
                logger.warning(f"[Cleanup] {error_msg}")

        return UnwindResult(executed=executed, errors=errors)
