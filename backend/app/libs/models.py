"""
Data models for the Trak AI backend

Enums, per-table row schemas, and the pydantic models exchanged between the
AI command pipeline, the undo mechanism and the HTTP layer.
Wire models use camelCase aliases; Python code uses snake_case names.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================


class TaskStatus(str, Enum):
    """Task status values"""
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority values"""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class ProjectStatus(str, Enum):
    """Project status values"""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class BlockType(str, Enum):
    """Block type values"""
    TEXT = "text"
    TASK = "task"
    LINK = "link"
    DIVIDER = "divider"
    TABLE = "table"
    TIMELINE = "timeline"
    FILE = "file"
    IMAGE = "image"
    GALLERY = "gallery"
    EMBED = "embed"
    PDF = "pdf"
    SECTION = "section"
    DOC_REFERENCE = "doc_reference"
    CHART = "chart"


class EntityType(str, Enum):
    """Entity types that can carry properties"""
    BLOCK = "block"
    TASK = "task"
    TIMELINE_EVENT = "timeline_event"
    TABLE_ROW = "table_row"


class TimelineEventStatus(str, Enum):
    """Timeline event status values"""
    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    DONE = "done"


class DependencyType(str, Enum):
    """Timeline dependency kinds"""
    FINISH_TO_START = "finish-to-start"
    START_TO_START = "start-to-start"
    FINISH_TO_FINISH = "finish-to-finish"
    START_TO_FINISH = "start-to-finish"


class FieldType(str, Enum):
    """Table field (column) types"""
    TEXT = "text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    STATUS = "status"
    PRIORITY = "priority"
    DATE = "date"
    CHECKBOX = "checkbox"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    PERSON = "person"
    FILES = "files"
    CREATED_TIME = "created_time"
    LAST_EDITED_TIME = "last_edited_time"
    CREATED_BY = "created_by"
    LAST_EDITED_BY = "last_edited_by"
    FORMULA = "formula"
    RELATION = "relation"
    ROLLUP = "rollup"


class PropertyType(str, Enum):
    """Workspace property definition types"""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    PERSON = "person"
    CHECKBOX = "checkbox"


class UndoAction(str, Enum):
    """Undo step kinds"""
    DELETE = "delete"
    UPSERT = "upsert"


class IndexingJobStatus(str, Enum):
    """Indexing job status values"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ChatRole(str, Enum):
    """Chat message role values"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# =============================================================================
# ROW SCHEMAS (one per table, keyed by table name)
# =============================================================================


class TableRow(BaseModel):
    """Base for row schemas. Unknown columns are kept as-is."""
    model_config = ConfigDict(extra="allow")


class IdRow(TableRow):
    id: str


class ProjectRow(IdRow):
    workspace_id: Optional[str] = None
    client_id: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    project_type: Optional[str] = None
    due_date_date: Optional[Any] = None
    due_date_text: Optional[str] = None


class TabRow(IdRow):
    project_id: Optional[str] = None
    parent_tab_id: Optional[str] = None
    name: Optional[str] = None
    position: Optional[int] = None


class BlockRow(IdRow):
    tab_id: Optional[str] = None
    parent_block_id: Optional[str] = None
    type: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    position: Optional[int] = None
    column: Optional[int] = None


class TaskItemRow(IdRow):
    task_block_id: Optional[str] = None
    workspace_id: Optional[str] = None
    project_id: Optional[str] = None
    tab_id: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[Any] = None
    display_order: Optional[int] = None


class TaskSubtaskRow(IdRow):
    task_id: Optional[str] = None
    title: Optional[str] = None
    completed: Optional[bool] = None
    display_order: Optional[int] = None


class TaskAssigneeRow(TableRow):
    task_id: str
    assignee_id: str
    assignee_name: Optional[str] = None


class TaskTagLinkRow(TableRow):
    task_id: str
    tag_id: str


class TaskCommentRow(IdRow):
    task_id: Optional[str] = None
    author_id: Optional[str] = None
    text: Optional[str] = None


class DataTableRow(IdRow):
    """Row of the `tables` table (a user-defined table)."""
    workspace_id: Optional[str] = None
    project_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class TableFieldRow(IdRow):
    table_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    order: Optional[Any] = None
    is_primary: Optional[bool] = None


class TableRowRow(IdRow):
    """Row of the `table_rows` table."""
    table_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    order: Optional[Any] = None


class TableCommentRow(IdRow):
    row_id: Optional[str] = None
    user_id: Optional[str] = None
    content: Optional[str] = None


class TimelineEventRow(IdRow):
    timeline_block_id: Optional[str] = None
    workspace_id: Optional[str] = None
    title: Optional[str] = None
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    status: Optional[str] = None
    assignee_id: Optional[str] = None
    progress: Optional[int] = None
    is_milestone: Optional[bool] = None


class TimelineDependencyRow(IdRow):
    timeline_block_id: Optional[str] = None
    workspace_id: Optional[str] = None
    from_id: Optional[str] = None
    to_id: Optional[str] = None
    dependency_type: Optional[str] = None


class PropertyDefinitionRow(IdRow):
    workspace_id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    options: Optional[List[Any]] = None


class EntityPropertyRow(IdRow):
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    property_definition_id: Optional[str] = None
    value: Optional[Any] = None
    workspace_id: Optional[str] = None


class ClientRow(IdRow):
    workspace_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None


class DocRow(IdRow):
    workspace_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    is_archived: Optional[bool] = None


class FileRow(IdRow):
    workspace_id: Optional[str] = None
    project_id: Optional[str] = None
    file_name: Optional[str] = None


class IndexingJobRow(IdRow):
    workspace_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    status: Optional[str] = None
    attempts: Optional[int] = None
    error_message: Optional[str] = None


ROW_MODELS: Dict[str, Type[TableRow]] = {
    "projects": ProjectRow,
    "tabs": TabRow,
    "blocks": BlockRow,
    "task_items": TaskItemRow,
    "task_subtasks": TaskSubtaskRow,
    "task_assignees": TaskAssigneeRow,
    "task_tag_links": TaskTagLinkRow,
    "task_comments": TaskCommentRow,
    "tables": DataTableRow,
    "table_fields": TableFieldRow,
    "table_rows": TableRowRow,
    "table_comments": TableCommentRow,
    "timeline_events": TimelineEventRow,
    "timeline_dependencies": TimelineDependencyRow,
    "property_definitions": PropertyDefinitionRow,
    "entity_properties": EntityPropertyRow,
    "clients": ClientRow,
    "docs": DocRow,
    "files": FileRow,
    "indexing_jobs": IndexingJobRow,
}


def validate_rows(table: str, rows: List[Any]) -> Optional[str]:
    """Check rows against the table's schema.

    Returns None when every row is valid, otherwise a readable error.
    """
    model = ROW_MODELS.get(table)
    if model is None:
        return f'No row schema for table "{table}"'
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            return f"Row {index} for {table} is not an object"
        try:
            model.model_validate(row)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            return f"Invalid row {index} for {table}: {location} {first.get('msg', 'invalid')}"
    return None


# =============================================================================
# UNDO MODELS
# =============================================================================


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UndoStep(WireModel):
    """One reversible instruction.

    `action` is kept as a plain string so unknown kinds reach the undo applier
    and are rejected per step instead of failing the whole request.
    """
    table: str
    action: str
    ids: Optional[List[str]] = None
    id_column: Optional[str] = None
    where: Optional[Dict[str, Any]] = None
    rows: Optional[List[Dict[str, Any]]] = None
    on_conflict: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


UndoBatch = List[UndoStep]


class UndoResult(WireModel):
    applied: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


# =============================================================================
# AI COMMAND MODELS
# =============================================================================


class AIMessage(BaseModel):
    """Chat message in the provider's wire format."""
    model_config = ConfigDict(extra="ignore")

    role: ChatRole
    content: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def to_provider(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = self.tool_calls
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        if self.name:
            message["name"] = self.name
        return message


class ExecutionContext(BaseModel):
    """Who is asking, and where in the workspace they are."""
    workspace_id: str
    workspace_name: Optional[str] = None
    user_id: str
    user_name: Optional[str] = None
    current_project_id: Optional[str] = None
    current_tab_id: Optional[str] = None
    context_block_id: Optional[str] = None
    context_table_id: Optional[str] = None


class ToolCallResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    warnings: Optional[List[str]] = None
    hint: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, **kwargs) -> "ToolCallResult":
        return cls(success=True, data=data, **kwargs)

    @classmethod
    def fail(cls, error: str, **kwargs) -> "ToolCallResult":
        return cls(success=False, error=error, **kwargs)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ToolCallRecord(WireModel):
    tool: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: ToolCallResult


class ExecutionResult(WireModel):
    success: bool
    response: str
    tool_calls_made: List[ToolCallRecord] = Field(default_factory=list)
    undo_batches: List[List[Dict[str, Any]]] = Field(default_factory=list)
    undo_skipped_tools: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ReindexResult(WireModel):
    workspace_id: str
    enqueued: int
    blocks: int
    files: int
