"""
Snapshot history with an undo/redo cursor.

The stack is append-only and truncated on branch: capturing after an undo
discards every snapshot past the cursor. Snapshots are deep-copied on the way
in and on the way out, so nothing the caller holds can alias the stack.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from .config import HISTORY_LIMIT, MAX_HISTORY_LIMIT
from .models import BuilderState, Snapshot

logger = logging.getLogger("uvicorn.error")

Restored = Tuple[BuilderState, Dict[str, Any]]


class HistoryManager:
    def __init__(self, limit: int = HISTORY_LIMIT):
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = min(limit, MAX_HISTORY_LIMIT)
        self._stack: List[Snapshot] = []
        self._index = -1

    # ---------- inspection ----------

    @property
    def cursor(self) -> int:
        return self._index

    @property
    def size(self) -> int:
        return len(self._stack)

    @property
    def snapshots(self) -> List[Snapshot]:
        """Deep copies of the stack, oldest first."""
        return [s.model_copy(deep=True) for s in self._stack]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._stack) - 1

    def matches_cursor(self, builder_state: BuilderState, spec: Dict[str, Any]) -> bool:
        """True when the snapshot under the cursor holds exactly this state."""
        if self._index < 0:
            return False
        snap = self._stack[self._index]
        return snap.builder_state == builder_state and snap.spec == spec

    def has_pending_tip(self, builder_state: BuilderState, spec: Dict[str, Any]) -> bool:
        """True when the cursor is on the newest snapshot and the live state has moved past it."""
        if not self._stack or self._index != len(self._stack) - 1:
            return False
        return not self.matches_cursor(builder_state, spec)

    # ---------- transitions ----------

    def capture(self, builder_state: BuilderState, spec: Dict[str, Any], description: Optional[str] = None) -> Snapshot:
        """
        Record a snapshot of the state *before* the mutation it precedes.

        Capturing the state already under the cursor only truncates the redo
        branch, so undo never steps between two identical snapshots.
        """
        del self._stack[self._index + 1:]
        if self.matches_cursor(builder_state, spec):
            logger.debug("history: %r matches the cursor, not duplicated (index=%d)", description, self._index)
            return self._stack[self._index].model_copy(deep=True)

        snap = Snapshot(
            builder_state=builder_state.model_copy(deep=True),
            spec=copy.deepcopy(spec),
            description=description,
        )
        self._stack.append(snap)
        overflow = len(self._stack) - self.limit
        if overflow > 0:
            del self._stack[:overflow]
        self._index = len(self._stack) - 1
        logger.debug("history: captured %r (index=%d, size=%d)", description, self._index, len(self._stack))
        return snap.model_copy(deep=True)

    def undo(self, current: Optional[Restored] = None) -> Optional[Restored]:
        """
        Step the cursor back and return a deep copy of the snapshot there.

        When *current* (the live builder state and spec) is given and the cursor
        sits on the newest snapshot, a live state that differs from it is first
        recorded as the tip so that ``redo`` can return to it. Returns None when
        there is nothing to undo.
        """
        if current is not None and self.has_pending_tip(*current):
            self.capture(current[0], current[1], "Current state")
        if self._index <= 0:
            return None
        self._index -= 1
        return self._restore(self._stack[self._index])

    def redo(self) -> Optional[Restored]:
        if self._index >= len(self._stack) - 1:
            return None
        self._index += 1
        return self._restore(self._stack[self._index])

    def clear(self) -> None:
        self._stack.clear()
        self._index = -1

    @staticmethod
    def _restore(snap: Snapshot) -> Restored:
        return snap.builder_state.model_copy(deep=True), copy.deepcopy(snap.spec)
