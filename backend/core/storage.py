"""
In-memory chart sessions.

A ChartSession owns one chart's data rows, inferred fields, builder state,
compiled spec, undo history and subscribers. Every mutating call snapshots
the current state first, so each edit can be undone. Sessions are not
thread-safe; the API serves each session from a single event loop.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .config import HISTORY_LIMIT
from .history import HistoryManager
from .models import BuilderState, ChartEditPlan, PartialBuilderState, SessionState
from skills.apply_plan import apply_plan as apply_edit_plan
from skills.classify import is_custom_spec
from skills.compile_spec import compile_spec
from skills.profile import infer_fields
from skills.validate import validate_builder_state

logger = logging.getLogger("uvicorn.error")

Listener = Callable[[SessionState], None]

DEFAULT_ROWS: List[Dict[str, Any]] = [
    {"Category": "A", "Date": "2024-01-01", "Sales": 120, "Profit": 35, "Region": "West"},
    {"Category": "B", "Date": "2024-01-01", "Sales": 90, "Profit": 22, "Region": "East"},
    {"Category": "A", "Date": "2024-02-01", "Sales": 150, "Profit": 40, "Region": "West"},
    {"Category": "B", "Date": "2024-02-01", "Sales": 110, "Profit": 28, "Region": "East"},
    {"Category": "C", "Date": "2024-02-01", "Sales": 70, "Profit": 15, "Region": "North"},
]


class ChartSession:
    def __init__(
        self,
        session_id: Optional[str] = None,
        rows: Optional[Sequence[Dict[str, Any]]] = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.rows: List[Dict[str, Any]] = copy.deepcopy(list(DEFAULT_ROWS if rows is None else rows))
        self.fields = infer_fields(self.rows)
        self.builder_state = BuilderState()
        self.spec: Dict[str, Any] = self._compile()
        self.history = HistoryManager(limit=history_limit)
        self.last_plan: Optional[ChartEditPlan] = None
        self._listeners: List[Listener] = []

    # ---------- read side ----------

    @property
    def is_custom(self) -> bool:
        return is_custom_spec(self.spec)

    def get(self) -> SessionState:
        """Deep-copied read view of the session."""
        return SessionState(
            builder_state=self.builder_state.model_copy(deep=True),
            spec=copy.deepcopy(self.spec),
            fields=list(self.fields),
            row_count=len(self.rows),
            is_custom=self.is_custom,
            can_undo=self.history.can_undo or self._has_pending_tip(),
            can_redo=self.history.can_redo,
            history_index=self.history.cursor,
            history_size=self.history.size,
            last_plan=self.last_plan,
            validation=validate_builder_state(self.builder_state, self.fields),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for post-mutation notifications; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------- internals ----------

    def _compile(self) -> Dict[str, Any]:
        return compile_spec(self.builder_state, self.fields)

    def _has_pending_tip(self) -> bool:
        return self.history.has_pending_tip(self.builder_state, self.spec)

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.get()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("session %s: listener failed", self.session_id)

    # ---------- mutations ----------

    def capture_snapshot(self, description: Optional[str] = None) -> None:
        self.history.capture(self.builder_state, self.spec, description)

    def mutate(self, fn: Callable[[BuilderState], BuilderState], description: Optional[str] = None) -> None:
        """Replace the builder state with ``fn(copy_of_state)`` and recompile."""
        new_state = fn(self.builder_state.model_copy(deep=True))
        self.capture_snapshot(description)
        self.builder_state = new_state
        self.spec = self._compile()
        logger.info("session %s: %s", self.session_id, description or "builder mutated")
        self._notify()

    def set_data(self, rows: Sequence[Dict[str, Any]], description: str = "Load data") -> None:
        """Replace the dataset, re-infer fields and recompile the spec from the builder."""
        self.capture_snapshot(description)
        self.rows = copy.deepcopy(list(rows))
        self.fields = infer_fields(self.rows)
        self.spec = self._compile()
        logger.info("session %s: loaded %d rows, %d fields", self.session_id, len(self.rows), len(self.fields))
        self._notify()

    def set_data_only(self, rows: Sequence[Dict[str, Any]], description: Optional[str] = None) -> None:
        """Replace the dataset and re-infer fields, keeping the current spec."""
        if description:
            self.capture_snapshot(description)
        self.rows = copy.deepcopy(list(rows))
        self.fields = infer_fields(self.rows)
        logger.info("session %s: data replaced (%d rows), spec kept", self.session_id, len(self.rows))
        self._notify()

    def set_builder_state(
        self,
        updates: Union[PartialBuilderState, Mapping[str, Any]],
        description: Optional[str] = None,
    ) -> None:
        """
        Shallow-merge *updates* into the builder state and recompile.

        Raises pydantic.ValidationError before anything changes when the merged
        state is invalid (e.g. stacking on a line mark).
        """
        if not isinstance(updates, PartialBuilderState):
            updates = PartialBuilderState.model_validate(dict(updates))
        new_state = self.builder_state.merge(updates)
        self.mutate(lambda _: new_state, description or "Builder change")

    def set_spec(
        self,
        spec: Dict[str, Any],
        partial: Optional[PartialBuilderState] = None,
        description: Optional[str] = None,
    ) -> None:
        """Store *spec* as-is, optionally merging decompiled builder attributes."""
        new_state = self.builder_state.merge(partial) if partial is not None else None
        self.capture_snapshot(description or "Spec edit")
        self.spec = copy.deepcopy(spec)
        if new_state is not None:
            self.builder_state = new_state
        logger.info("session %s: spec replaced (custom=%s)", self.session_id, self.is_custom)
        self._notify()

    def apply_plan(self, plan: ChartEditPlan, description: Optional[str] = None) -> None:
        new_state = apply_edit_plan(self.builder_state, plan, self.fields)
        self.last_plan = plan
        self.mutate(lambda _: new_state, description or f"AI: {plan.intent_text}")

    def set_last_plan(self, plan: Optional[ChartEditPlan]) -> None:
        self.last_plan = plan

    def undo(self) -> bool:
        restored = self.history.undo(current=(self.builder_state, self.spec))
        if restored is None:
            return False
        self.builder_state, self.spec = restored
        logger.info("session %s: undo -> %d", self.session_id, self.history.cursor)
        self._notify()
        return True

    def redo(self) -> bool:
        restored = self.history.redo()
        if restored is None:
            return False
        self.builder_state, self.spec = restored
        logger.info("session %s: redo -> %d", self.session_id, self.history.cursor)
        self._notify()
        return True

    def reset(self) -> None:
        """Back to the default builder state; history is kept so the reset can be undone."""
        self.last_plan = None
        self.mutate(lambda _: BuilderState(), "Reset")


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------

SESSIONS: Dict[str, ChartSession] = {}


def get_session(session_id: str) -> ChartSession:
    if session_id not in SESSIONS:
        SESSIONS[session_id] = ChartSession(session_id=session_id)
    return SESSIONS[session_id]


def drop_session(session_id: str) -> None:
    SESSIONS.pop(session_id, None)
