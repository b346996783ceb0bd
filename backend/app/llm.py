import json
import re
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import TypeAdapter, ValidationError

from core.models import (
    OPERATION_KINDS,
    BuilderState,
    ChartEditPlan,
    DataField,
    EditOperation,
    SpecEditResult,
)
from skills.validate import validate_spec
from .llm_loader import LLMConfigError, get_chat_model, get_provider_name
from .prompts import PLAN_SYSTEM_PROMPT, SPEC_EDIT_SYSTEM_PROMPT
import logging

logger = logging.getLogger("uvicorn.error")

LLM_CONFIDENCE = 0.9

_operation_adapter = TypeAdapter(EditOperation)


class LLMError(RuntimeError):
    pass


def _get_llm(temperature: Optional[float] = None) -> BaseChatModel:
    try:
        return get_chat_model(temperature=temperature)
    except LLMConfigError as exc:
        raise LLMError(str(exc)) from exc


# ---------- helpers for response normalisation ----------


def _as_text_from_content(content: Any) -> str:
    """Normalize LC content (str | list[chunk] | dict | AIMessage)."""
    if content is None:
        return ""
    if isinstance(content, AIMessage):
        return _as_text_from_content(content.content)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for p in content:
            if isinstance(p, str):
                parts.append(p)
            elif isinstance(p, dict):
                t = p.get("text")
                if isinstance(t, str):
                    parts.append(t)
            else:
                parts.append(str(p))
        return "".join(parts)
    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        if isinstance(content.get("content"), str):
            return content["content"]
        return str(content)
    return str(content)


def _as_text_from_response(resp: Any) -> str:
    """
    Try the places providers may stash text:
      - resp.content (usual)
      - resp.additional_kwargs.content
      - a raw string or dict response
    """
    if isinstance(resp, str):
        return resp
    text = _as_text_from_content(getattr(resp, "content", None))
    if text:
        return text

    extras = getattr(resp, "additional_kwargs", {}) or {}
    if isinstance(extras, dict):
        c2 = extras.get("content")
        if isinstance(c2, str) and c2.strip():
            return c2

    if isinstance(resp, dict):
        c = resp.get("content")
        if isinstance(c, str) and c.strip():
            return c

    return ""


def _short_error(exc: Exception) -> str:
    msg = str(exc)
    if not msg:
        return exc.__class__.__name__
    msg = msg.replace("\n", " ").strip()
    return msg[:200]


# ---------- JSON extraction & repair ----------


def _strip_code_fences(text: str) -> str:
    return re.sub(
        r"^```(?:json)?\s*|\s*```$",
        "",
        text.strip(),
        flags=re.IGNORECASE | re.MULTILINE,
    )


def _first_balanced_json(text: str) -> str:
    text = _strip_code_fences(text)
    start = None
    depth = 0
    for i, ch in enumerate(text):
        if ch in "{[":
            start = i
            depth = 1
            break
    if start is None:
        raise ValueError("no JSON start in response")
    in_string = False
    escaped = False
    for j in range(start + 1, len(text)):
        ch = text[j]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start : j + 1]
    teaser = text[start : start + 400].replace("\n", "\\n")
    raise ValueError(f"unterminated JSON (teaser): {teaser}")


_re_trailing_commas = re.compile(r",(\s*[}\]])")
_re_single_quoted   = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")
_re_bare_literals   = re.compile(r"\b(?:None|True|False)\b")
_re_ellipses        = re.compile(r"\.\.\.")      # literal ...

def _try_repair_json(s: str) -> Any:
    t = s
    # 1) remove trailing commas
    t = _re_trailing_commas.sub(r"\1", t)
    # 2) Python literals -> JSON
    t = _re_bare_literals.sub(lambda m: {"None": "null", "True": "true", "False": "false"}[m.group(0)], t)
    # 3) ellipses -> null
    t = _re_ellipses.sub("null", t)
    # 4) single-quoted strings -> double-quoted
    t = _re_single_quoted.sub(lambda m: '"' + m.group(1).replace('"', '\\"') + '"', t)
    return json.loads(t)


def _load_json(text: str) -> Any:
    txt = _strip_code_fences(text or "")
    if not txt.strip():
        raise ValueError("empty LLM response text")
    try:
        return json.loads(txt)
    except ValueError:
        pass
    block = _first_balanced_json(txt)
    try:
        return json.loads(block)
    except ValueError:
        try:
            return _try_repair_json(block)
        except ValueError as e:
            teaser = block[:400].replace("\n", "\\n")
            raise ValueError(f"json_parse_failed after repair: {e}; teaser={teaser}")


# ---------- prompt construction ----------


def fields_markdown(fields: Sequence[DataField], field_names: Sequence[str] = ()) -> str:
    if fields:
        return "\n".join(f"- {f.name} ({f.inferred_type})" for f in fields)
    return "\n".join(f"- {name}" for name in field_names) or "- (no fields)"


def build_plan_prompt(
    command: str,
    field_names: Sequence[str],
    state: BuilderState,
    fields: Sequence[DataField] = (),
) -> str:
    encodings = ", ".join(
        f"{channel}: {enc.field}"
        for channel in ("x", "y", "color", "size")
        for enc in [getattr(state.encodings, channel)]
        if enc is not None and enc.field
    )
    return f"""AVAILABLE DATA FIELDS:
{fields_markdown(fields, field_names)}

CURRENT CHART STATE:
- Mark type: {state.mark.type}
- Encodings: {encodings or "none"}
- Transforms: {len(state.transforms)}
- Title: {state.title or "none"}

USER COMMAND:
"{command}"

Return ONLY a JSON array of operations.
"""


def build_spec_edit_prompt(command: str, spec: Dict[str, Any], fields: Sequence[DataField] = ()) -> str:
    return f"""AVAILABLE DATA FIELDS:
{fields_markdown(fields)}

CURRENT VEGA-LITE SPEC:
{json.dumps(spec, ensure_ascii=False, indent=2)}

USER MODIFICATION REQUEST:
"{command}"

Return ONLY the complete modified JSON spec.
"""


# ---------- operation parsing ----------


def _coerce_operation_list(obj: Any) -> List[Any]:
    """
    Accepts:
    - list -> as-is
    - {"operations": [...]} -> the list
    - a single {"op": ...} dict -> one-item list
    Raises LLMError for anything else.
    """
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        if isinstance(obj.get("operations"), list):
            return obj["operations"]
        if "op" in obj:
            return [obj]
    raise LLMError(f"plan_not_array: unsupported shape {type(obj).__name__}")


def parse_operations(obj: Any) -> List[Any]:
    """Validate raw operation dicts; unknown kinds are dropped, malformed known kinds raise."""
    ops: List[Any] = []
    for raw in _coerce_operation_list(obj):
        kind = raw.get("op") if isinstance(raw, dict) else None
        if kind not in OPERATION_KINDS or kind == "direct_spec_edit":
            logger.warning("llm planner: dropping unsupported operation %r", raw)
            continue
        try:
            ops.append(_operation_adapter.validate_python(raw))
        except ValidationError as exc:
            raise LLMError(f"invalid operation {kind}: {_short_error(exc)}") from exc
    return ops


# ---------- the planner ----------


class LLMPlanner:
    """
    Remote planner backed by a LangChain chat model.

    ``plan`` returns the same ChartEditPlan shape as the pattern planner and
    raises LLMError on any failure. ``edit_spec`` returns a full replacement
    spec for custom specs and reports failures in the result instead.
    Neither method touches session state.
    """

    name = "llm"

    def __init__(self, llm: Optional[BaseChatModel] = None, temperature: Optional[float] = None):
        self._llm = llm
        self.temperature = temperature

    def _model(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = _get_llm(self.temperature)
            logger.info("llm planner: using provider %s", get_provider_name())
        return self._llm

    async def _ask(self, system_prompt: str, user_message: str) -> str:
        llm = self._model()
        try:
            resp = await llm.ainvoke([
                SystemMessage(content=system_prompt),
                HumanMessage(content=user_message),
            ])
        except Exception as exc:
            logger.exception("llm planner: request failed")
            raise LLMError(f"llm_request_failed: {_short_error(exc)}") from exc
        text = _as_text_from_response(resp)
        if not text.strip():
            raise LLMError("empty LLM response")
        return text

    async def plan(
        self,
        command: str,
        field_names: Sequence[str],
        state: BuilderState,
        fields: Sequence[DataField] = (),
    ) -> ChartEditPlan:
        text = await self._ask(PLAN_SYSTEM_PROMPT, build_plan_prompt(command, field_names, state, fields))
        try:
            obj = _load_json(text)
        except ValueError as exc:
            raise LLMError(f"llm_response_not_json: {_short_error(exc)}") from exc
        ops = parse_operations(obj)
        return ChartEditPlan(intent_text=command, confidence=LLM_CONFIDENCE, operations=ops)

    async def edit_spec(
        self,
        command: str,
        spec: Dict[str, Any],
        fields: Sequence[DataField] = (),
    ) -> SpecEditResult:
        try:
            text = await self._ask(SPEC_EDIT_SYSTEM_PROMPT, build_spec_edit_prompt(command, spec, fields))
            new_spec = _load_json(text)
        except (LLMError, ValueError) as exc:
            return SpecEditResult(success=False, error=_short_error(exc))

        check = validate_spec(new_spec)
        if not check.valid:
            msg = "; ".join(e.message for e in check.errors)
            logger.warning("llm planner: rejected edited spec: %s", msg)
            return SpecEditResult(success=False, error=f"invalid spec from LLM: {msg}")
        return SpecEditResult(success=True, spec=new_spec)
