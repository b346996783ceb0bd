"""
Edit pathways over a ChartSession.

Three ways to change a chart: a visual control (builder update), a text
command (planner -> plan -> applier, or a direct spec rewrite for custom
specs), and a manual spec edit. Each one finishes any async planning first,
then snapshots and mutates in one step, so a failed or cancelled planner call
leaves the session untouched.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from app.llm import LLMError
from core.models import ChartEditPlan, CommandOutcome, DirectSpecEdit
from core.storage import ChartSession
from skills.classify import is_custom_spec
from skills.decompile_spec import decompile_spec
from skills.intent import ChartPlanner, SpecEditor
from skills.validate import SpecValidationError, validate_spec

logger = logging.getLogger("uvicorn.error")

DIRECT_EDIT_CONFIDENCE = 0.9
INLINE_DATASET = {"name": "table"}


class CustomSpecError(RuntimeError):
    """Raised when a builder-level edit targets a custom spec."""


# ---------------------------------------------------------------------------
# Text commands
# ---------------------------------------------------------------------------

async def run_command(
    session: ChartSession,
    command: str,
    planner: ChartPlanner,
    allow_regenerate: bool = False,
) -> CommandOutcome:
    """
    Plan *command* and apply it to *session*.

    Remote planner failures are reported in the outcome, never raised, and
    leave the session as it was.
    """
    command = (command or "").strip()
    if not command:
        return CommandOutcome(message="Nothing to do: empty command.")

    planner_name = getattr(planner, "name", type(planner).__name__)
    logger.info("session %s: command %r via %s planner", session.session_id, command, planner_name)

    if session.is_custom:
        if isinstance(planner, SpecEditor):
            return await _direct_spec_edit(session, command, planner)
        if not allow_regenerate:
            logger.warning("session %s: refused pattern command on custom spec", session.session_id)
            return CommandOutcome(
                message="This chart uses a custom spec. Use the AI planner or edit the spec directly, "
                        "or allow regenerating it from the builder.",
                error="custom_spec",
            )

    try:
        plan = await planner.plan(command, [f.name for f in session.fields], session.builder_state, session.fields)
    except LLMError as exc:
        logger.exception("session %s: planner failed", session.session_id)
        return CommandOutcome(message="The AI planner could not handle that command.", error=str(exc))

    if not plan.operations:
        session.set_last_plan(plan)
        return CommandOutcome(plan=plan, message="Nothing changed: the command matched no known edit.")

    session.apply_plan(plan, f"AI: {command}")
    return CommandOutcome(
        changed=True,
        plan=plan,
        message=f"Applied {len(plan.operations)} operation(s).",
    )


async def _direct_spec_edit(session: ChartSession, command: str, editor: SpecEditor) -> CommandOutcome:
    result = await editor.edit_spec(command, copy.deepcopy(session.spec), session.fields)
    if not result.success or result.spec is None:
        logger.warning("session %s: direct spec edit failed: %s", session.session_id, result.error)
        return CommandOutcome(message="The AI could not edit this spec.", error=result.error or "edit failed")

    plan = ChartEditPlan(
        intent_text=command,
        confidence=DIRECT_EDIT_CONFIDENCE,
        operations=[DirectSpecEdit()],
    )
    session.set_last_plan(plan)
    session.set_spec(result.spec, description=f"AI: {command}")
    return CommandOutcome(changed=True, plan=plan, message="Spec edited directly.", used_direct_edit=True)


# ---------------------------------------------------------------------------
# Manual spec edits
# ---------------------------------------------------------------------------

def apply_manual_spec(session: ChartSession, spec: Dict[str, Any]) -> None:
    """
    Accept a hand-edited spec.

    Inline ``data.values`` move into the session's rows and the spec is
    rebound to the named dataset. Builder-representable specs are decompiled
    and merged into the builder state; custom specs are stored as-is.
    """
    check = validate_spec(spec)
    if not check.valid:
        raise SpecValidationError(check)

    spec = copy.deepcopy(spec)
    data = spec.get("data")
    inline_rows = None
    if isinstance(data, dict) and isinstance(data.get("values"), list):
        inline_rows = [r for r in data["values"] if isinstance(r, dict)]
        spec["data"] = dict(INLINE_DATASET)

    partial = None if is_custom_spec(spec) else decompile_spec(spec)
    session.set_spec(spec, partial, "Manual spec edit")
    if inline_rows is not None:
        session.set_data_only(inline_rows)


# ---------------------------------------------------------------------------
# Visual controls
# ---------------------------------------------------------------------------

def update_builder(session: ChartSession, updates: Mapping[str, Any], description: Optional[str] = None) -> None:
    """Builder-panel edit. Raises CustomSpecError while a custom spec is active."""
    if session.is_custom:
        raise CustomSpecError("builder controls are disabled while a custom spec is active")
    session.set_builder_state(updates, description)
