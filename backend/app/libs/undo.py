"""Undo support for AI-driven edits.

Write tools record declarative reversal instructions (undo steps) while they
run. The steps from one tool call form a batch; the batches of a command
travel back to the client with the AI response and come back here when the
user asks to undo.

Replay walks the batches newest first, and the steps inside a batch in the
order they were recorded. Replay is best effort: a failed step is counted and
reported, the rest still run.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from app.libs.data_gateway import DataGateway, GatewayError
from app.libs.models import UndoAction, UndoBatch, UndoResult, UndoStep, validate_rows

logger = logging.getLogger(__name__)

ALLOWED_UNDO_TABLES = frozenset(
    {
        "projects",
        "tabs",
        "blocks",
        "task_items",
        "task_subtasks",
        "task_assignees",
        "task_tag_links",
        "task_comments",
        "tables",
        "table_fields",
        "table_rows",
        "table_comments",
        "timeline_events",
        "timeline_dependencies",
        "property_definitions",
        "entity_properties",
        "clients",
        "docs",
        "files",
    }
)

StepInput = Union[UndoStep, Dict[str, Any]]


class UndoTracker:
    """Collects undo batches for one AI command."""

    def __init__(self):
        self._batches: List[UndoBatch] = []
        self._skipped_tools: List[str] = []

    def add_batch(self, steps: Sequence[UndoStep]) -> None:
        if steps:
            self._batches.append([step.model_copy(deep=True) for step in steps])

    def skip_tool(self, tool_name: str) -> None:
        """Remember a write tool whose effect could not be made undoable."""
        if tool_name not in self._skipped_tools:
            self._skipped_tools.append(tool_name)

    @property
    def batches(self) -> List[UndoBatch]:
        return [[step.model_copy(deep=True) for step in batch] for batch in self._batches]

    @property
    def skipped_tools(self) -> List[str]:
        return list(self._skipped_tools)

    def to_wire(self) -> List[List[Dict[str, Any]]]:
        return [[step.to_wire() for step in batch] for batch in self._batches]


def normalize_batches(batches: Any) -> List[List[StepInput]]:
    """Drop anything that is not a non-empty list of steps."""
    if not isinstance(batches, (list, tuple)):
        return []
    return [list(batch) for batch in batches if isinstance(batch, (list, tuple)) and len(batch) > 0]


def _coerce_step(step: StepInput) -> Optional[UndoStep]:
    if isinstance(step, UndoStep):
        return step
    if not isinstance(step, dict):
        return None
    try:
        return UndoStep.model_validate(step)
    except ValidationError:
        return None


async def _apply(step: UndoStep, gateway: DataGateway) -> Optional[str]:
    if step.table not in ALLOWED_UNDO_TABLES:
        return f'Undo not allowed for table "{step.table}"'

    if step.action == UndoAction.DELETE.value:
        id_column = step.id_column or "id"
        has_ids = bool(step.ids)
        has_where = bool(step.where)
        if not has_ids and not has_where:
            return "Undo delete step missing ids/where"
        await gateway.delete(
            step.table,
            match=step.where if has_where else None,
            in_=(id_column, step.ids) if has_ids else None,
        )
        return None

    if step.action == UndoAction.UPSERT.value:
        if not step.rows:
            return None
        invalid = validate_rows(step.table, step.rows)
        if invalid:
            return invalid
        await gateway.upsert(step.table, step.rows, on_conflict=step.on_conflict)
        return None

    return "Unsupported undo step"


async def apply_undo_step(step: UndoStep, gateway: DataGateway) -> Optional[str]:
    """Apply one undo step.

    Returns None on success or a readable error. Never raises, so a batch can
    carry on past a failed step.
    """
    try:
        return await _apply(step, gateway)
    except GatewayError as e:
        return str(e) or f"Failed to {step.action} rows"
    except Exception as e:
        logger.exception("Undo step on %s raised an unexpected error", step.table)
        return str(e) or f"Failed to {step.action} rows"


async def undo_batches(gateway: DataGateway, batches: Any) -> UndoResult:
    """Replay undo batches newest first, preserving step order within a batch."""
    normalized = normalize_batches(batches)
    result = UndoResult()
    if not normalized:
        return result

    for batch in reversed(normalized):
        for raw_step in batch:
            step = _coerce_step(raw_step)
            error = "Malformed undo step" if step is None else await apply_undo_step(step, gateway)
            if error:
                result.failed += 1
                result.errors.append(error)
            else:
                result.applied += 1

    if result.failed:
        logger.warning("Undo finished with %d failed step(s): %s", result.failed, result.errors)
    else:
        logger.info("Undo applied %d step(s)", result.applied)
    return result
