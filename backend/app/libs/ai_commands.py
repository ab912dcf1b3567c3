"""AI commands.

Every tool the model may call is a pydantic model tagged by its ``tool`` name.
The closed union of those models is parsed with a TypeAdapter, so dispatch is
by tag and the arguments are validated before anything touches storage.

Each write command knows how to undo itself:
- ``capture_undo`` runs before the write and snapshots what it will change
- ``undo_after`` runs after a successful write and reverses what it created
"""

from datetime import date
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from app.libs.data_gateway import DataGateway, GatewayError, Row
from app.libs.models import (
    BlockType,
    DependencyType,
    EntityType,
    ExecutionContext,
    FieldType,
    ProjectStatus,
    PropertyType,
    TaskPriority,
    TaskStatus,
    TimelineEventStatus,
    ToolCallResult,
    UndoAction,
    UndoStep,
)
from app.libs.reindex import reindex_workspace_content

# Tables that carry their own workspace_id column.
WORKSPACE_TABLES = frozenset(
    {
        "projects",
        "task_items",
        "clients",
        "docs",
        "files",
        "tables",
        "task_tags",
        "property_definitions",
        "entity_properties",
        "timeline_events",
        "timeline_dependencies",
    }
)

# Child table -> (foreign key column, parent table), walked up to a workspace table.
PARENT_LINKS: Dict[str, Tuple[str, str]] = {
    "tabs": ("project_id", "projects"),
    "blocks": ("tab_id", "tabs"),
    "task_subtasks": ("task_id", "task_items"),
    "task_comments": ("task_id", "task_items"),
    "table_rows": ("table_id", "tables"),
    "table_fields": ("table_id", "tables"),
    "table_comments": ("row_id", "table_rows"),
}

ENTITY_LABELS = {
    "projects": "Project",
    "tabs": "Tab",
    "blocks": "Block",
    "task_items": "Task",
    "task_subtasks": "Subtask",
    "task_comments": "Comment",
    "clients": "Client",
    "docs": "Doc",
    "tables": "Table",
    "table_rows": "Row",
    "property_definitions": "Property definition",
    "table_fields": "Field",
    "table_comments": "Comment",
    "timeline_events": "Timeline event",
    "timeline_dependencies": "Dependency",
    "files": "File",
}

ENTITY_PROPERTY_CONFLICT = "entity_type,entity_id,property_definition_id"


async def workspace_of(gateway: DataGateway, table: str, row_id: str) -> Optional[str]:
    """Follow foreign keys from a row up to the workspace that owns it."""
    while table in PARENT_LINKS:
        column, parent = PARENT_LINKS[table]
        row = await gateway.select_one(table, column, match={"id": row_id})
        if not row or not row.get(column):
            return None
        table, row_id = parent, str(row[column])
    row = await gateway.select_one(table, "workspace_id", match={"id": row_id})
    return str(row["workspace_id"]) if row and row.get("workspace_id") else None


async def assignee_denied(gateway: DataGateway, context: ExecutionContext, user_id: Optional[str]) -> Optional[str]:
    """Error when user_id is set but is not a member of the caller's workspace."""
    if not user_id:
        return None
    member = await gateway.select_one(
        "workspace_members", "user_id", match={"workspace_id": context.workspace_id, "user_id": user_id}
    )
    return None if member else f"Assignee not found: {user_id}"


async def next_position(gateway: DataGateway, table: str, match: Dict[str, Any], column: str = "position") -> int:
    """One past the highest value of an ordering column, or 0 for an empty set."""
    last = await gateway.select(table, column, match=match, order_by=column, descending=True, limit=1)
    if not last or last[0].get(column) is None:
        return 0
    return int(last[0][column]) + 1


def delete_by_ids(table: str, ids: List[Any], id_column: str = "id") -> List[UndoStep]:
    clean = [str(i) for i in ids if i]
    if not clean:
        return []
    return [UndoStep(table=table, action=UndoAction.DELETE.value, ids=clean, id_column=id_column)]


def restore_rows(table: str, rows: List[Row], on_conflict: Optional[str] = "id") -> List[UndoStep]:
    if not rows:
        return []
    return [UndoStep(table=table, action=UndoAction.UPSERT.value, rows=rows, on_conflict=on_conflict)]


# =============================================================================
# BASE CLASSES
# =============================================================================


class AICommand(BaseModel):
    """Base for every tool command."""

    model_config = ConfigDict(extra="ignore")

    read_only: ClassVar[bool] = False
    # (table, field) pairs whose referenced row must belong to the caller's workspace.
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = ()

    async def authorize(self, gateway: DataGateway, context: ExecutionContext) -> Optional[str]:
        for table, field in self.guards:
            value = getattr(self, field, None)
            if not value:
                continue
            owner = await workspace_of(gateway, table, str(value))
            if owner != context.workspace_id:
                return f"{ENTITY_LABELS.get(table, table)} not found: {value}"
        return None

    async def run(self, gateway: DataGateway, context: ExecutionContext) -> ToolCallResult:
        raise NotImplementedError

    async def capture_undo(self, gateway: DataGateway, context: ExecutionContext) -> List[UndoStep]:
        return []

    def undo_after(self, result: ToolCallResult) -> List[UndoStep]:
        return []

    def payload(self, *exclude: str) -> Dict[str, Any]:
        """Arguments that were actually provided, JSON-ready."""
        return self.model_dump(mode="json", exclude={"tool", *exclude}, exclude_none=True)


class CreateRowCommand(AICommand):
    """Insert one row; undo deletes it again."""

    table: ClassVar[str]

    async def build_row(self, gateway: DataGateway, context: ExecutionContext) -> Dict[str, Any]:
        row = self.payload()
        if self.table in WORKSPACE_TABLES:
            row["workspace_id"] = context.workspace_id
        return row

    async def run(self, gateway, context):
        row = await self.build_row(gateway, context)
        created = await gateway.insert(self.table, [row])
        if not created:
            return ToolCallResult.fail(f"Failed to create {ENTITY_LABELS.get(self.table, self.table).lower()}")
        return ToolCallResult.ok(created[0])

    def undo_after(self, result):
        data = result.data if isinstance(result.data, dict) else {}
        return delete_by_ids(self.table, [data.get("id")])


class RowTargetCommand(AICommand):
    """Acts on a single existing row identified by one argument."""

    table: ClassVar[str]
    id_field: ClassVar[str]

    @property
    def target_id(self) -> str:
        return str(getattr(self, self.id_field))

    def scope(self, context: ExecutionContext) -> Dict[str, Any]:
        match: Dict[str, Any] = {"id": self.target_id}
        if self.table in WORKSPACE_TABLES:
            match["workspace_id"] = context.workspace_id
        return match

    async def authorize(self, gateway, context):
        if self.table not in WORKSPACE_TABLES:
            owner = await workspace_of(gateway, self.table, self.target_id)
            if owner != context.workspace_id:
                return f"{ENTITY_LABELS.get(self.table, self.table)} not found: {self.target_id}"
        return await super().authorize(gateway, context)

    async def capture_undo(self, gateway, context):
        rows = await gateway.select(self.table, match=self.scope(context))
        return restore_rows(self.table, rows)

    def not_found(self) -> ToolCallResult:
        return ToolCallResult.fail(f"{ENTITY_LABELS.get(self.table, self.table)} not found: {self.target_id}")


class UpdateRowCommand(RowTargetCommand):
    """Update provided columns; undo restores the snapshot."""

    def changes(self) -> Dict[str, Any]:
        return self.payload(self.id_field)

    async def run(self, gateway, context):
        values = self.changes()
        if not values:
            return ToolCallResult.fail("No fields to update")
        rows = await gateway.update(self.table, values, match=self.scope(context))
        if not rows:
            return self.not_found()
        return ToolCallResult.ok(rows[0])


class DeleteRowCommand(RowTargetCommand):
    """Delete one row; undo re-inserts the snapshot."""

    async def run(self, gateway, context):
        rows = await gateway.delete(self.table, match=self.scope(context))
        if not rows:
            return self.not_found()
        return ToolCallResult.ok({"deleted": self.target_id})


# =============================================================================
# READ-ONLY COMMANDS
# =============================================================================


def _matches_query(value: Any, query: Optional[str]) -> bool:
    if not query:
        return True
    return query.lower() in str(value or "").lower()


class SearchTasks(AICommand):
    tool: Literal["search_tasks"] = "search_tasks"
    read_only: ClassVar[bool] = True

    query: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    project_id: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=500)

    async def run(self, gateway, context):
        match = {"workspace_id": context.workspace_id, **self.payload("query", "limit")}
        rows = await gateway.select("task_items", match=match, order_by="updated_at", descending=True)
        found = [r for r in rows if _matches_query(r.get("title"), self.query)][: self.limit]
        return ToolCallResult.ok(found)


class SearchProjects(AICommand):
    tool: Literal["search_projects"] = "search_projects"
    read_only: ClassVar[bool] = True

    query: Optional[str] = None
    status: Optional[ProjectStatus] = None
    limit: int = Field(default=50, ge=1, le=500)

    async def run(self, gateway, context):
        match = {"workspace_id": context.workspace_id, **self.payload("query", "limit")}
        rows = await gateway.select("projects", match=match, order_by="updated_at", descending=True)
        found = [r for r in rows if _matches_query(r.get("name"), self.query)][: self.limit]
        return ToolCallResult.ok(found)


class SearchBlocks(AICommand):
    tool: Literal["search_blocks"] = "search_blocks"
    read_only: ClassVar[bool] = True
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tabs", "tab_id"),)

    tab_id: str
    type: Optional[BlockType] = None

    async def run(self, gateway, context):
        rows = await gateway.select("blocks", match=self.payload(), order_by="position")
        return ToolCallResult.ok(rows)


GETTABLE_ENTITIES = {
    "project": "projects",
    "tab": "tabs",
    "block": "blocks",
    "task": "task_items",
    "client": "clients",
    "doc": "docs",
    "table": "tables",
    "timeline_event": "timeline_events",
    "file": "files",
}


class GetEntityById(AICommand):
    tool: Literal["get_entity_by_id"] = "get_entity_by_id"
    read_only: ClassVar[bool] = True

    entity_type: Literal["project", "tab", "block", "task", "client", "doc", "table", "timeline_event", "file"]
    id: str

    async def run(self, gateway, context):
        table = GETTABLE_ENTITIES[self.entity_type]
        if await workspace_of(gateway, table, self.id) != context.workspace_id:
            return ToolCallResult.fail(f"{self.entity_type} not found: {self.id}")
        row = await gateway.select_one(table, match={"id": self.id})
        return ToolCallResult.ok(row)


class ReindexWorkspaceContent(AICommand):
    tool: Literal["reindex_workspace_content"] = "reindex_workspace_content"
    read_only: ClassVar[bool] = True

    include_blocks: bool = True
    include_files: bool = True
    max_items: Optional[int] = None

    async def run(self, gateway, context):
        result = await reindex_workspace_content(
            gateway,
            context.workspace_id,
            include_blocks=self.include_blocks,
            include_files=self.include_files,
            max_items=self.max_items,
        )
        return ToolCallResult.ok(result.model_dump(by_alias=True))


# =============================================================================
# PROJECTS, TABS, BLOCKS
# =============================================================================


class CreateProject(CreateRowCommand):
    tool: Literal["create_project"] = "create_project"
    table: ClassVar[str] = "projects"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("clients", "client_id"),)

    name: str = Field(..., min_length=1)
    status: ProjectStatus = ProjectStatus.NOT_STARTED
    client_id: Optional[str] = None
    project_type: Literal["project", "internal"] = "project"
    due_date: Optional[date] = None

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        if "due_date" in row:
            row["due_date_date"] = row.pop("due_date")
        return row


class UpdateProject(UpdateRowCommand):
    tool: Literal["update_project"] = "update_project"
    table: ClassVar[str] = "projects"
    id_field: ClassVar[str] = "project_id"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("clients", "client_id"),)

    project_id: str
    name: Optional[str] = Field(None, min_length=1)
    status: Optional[ProjectStatus] = None
    client_id: Optional[str] = None
    due_date: Optional[date] = None

    def changes(self):
        values = super().changes()
        if "due_date" in values:
            values["due_date_date"] = values.pop("due_date")
            values["due_date_text"] = None
        return values


class DeleteProject(DeleteRowCommand):
    tool: Literal["delete_project"] = "delete_project"
    table: ClassVar[str] = "projects"
    id_field: ClassVar[str] = "project_id"

    project_id: str


class CreateTab(CreateRowCommand):
    tool: Literal["create_tab"] = "create_tab"
    table: ClassVar[str] = "tabs"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("projects", "project_id"), ("tabs", "parent_tab_id"))

    project_id: str
    name: str = Field(..., min_length=1)
    parent_tab_id: Optional[str] = None
    position: Optional[int] = Field(None, ge=0)

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        if self.position is None:
            row["position"] = await next_position(gateway, "tabs", {"project_id": self.project_id})
        return row


class UpdateTab(UpdateRowCommand):
    tool: Literal["update_tab"] = "update_tab"
    table: ClassVar[str] = "tabs"
    id_field: ClassVar[str] = "tab_id"

    tab_id: str
    name: Optional[str] = Field(None, min_length=1)
    position: Optional[int] = Field(None, ge=0)


class DeleteTab(DeleteRowCommand):
    tool: Literal["delete_tab"] = "delete_tab"
    table: ClassVar[str] = "tabs"
    id_field: ClassVar[str] = "tab_id"

    tab_id: str


class CreateBlock(CreateRowCommand):
    tool: Literal["create_block"] = "create_block"
    table: ClassVar[str] = "blocks"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tabs", "tab_id"), ("blocks", "parent_block_id"))

    tab_id: str
    type: BlockType
    content: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[int] = Field(None, ge=0)
    column: int = Field(default=0, ge=0, le=2)
    parent_block_id: Optional[str] = None

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        if self.position is None:
            row["position"] = await next_position(gateway, "blocks", {"tab_id": self.tab_id})
        return row


class UpdateBlock(UpdateRowCommand):
    tool: Literal["update_block"] = "update_block"
    table: ClassVar[str] = "blocks"
    id_field: ClassVar[str] = "block_id"

    block_id: str
    content: Optional[Dict[str, Any]] = None
    position: Optional[int] = Field(None, ge=0)
    column: Optional[int] = Field(None, ge=0, le=2)


class MoveBlock(UpdateRowCommand):
    """Move a block to another position, column or tab."""

    tool: Literal["move_block"] = "move_block"
    table: ClassVar[str] = "blocks"
    id_field: ClassVar[str] = "block_id"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tabs", "target_tab_id"),)

    block_id: str
    target_tab_id: Optional[str] = None
    position: int = Field(..., ge=0)
    column: Optional[int] = Field(None, ge=0, le=2)

    def changes(self):
        values = super().changes()
        if "target_tab_id" in values:
            values["tab_id"] = values.pop("target_tab_id")
        return values


class DeleteBlock(DeleteRowCommand):
    tool: Literal["delete_block"] = "delete_block"
    table: ClassVar[str] = "blocks"
    id_field: ClassVar[str] = "block_id"

    block_id: str


class CreateChartBlock(CreateRowCommand):
    """Add a chart block; the chart is rendered client side from its content."""

    tool: Literal["create_chart_block"] = "create_chart_block"
    table: ClassVar[str] = "blocks"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tabs", "tab_id"),)

    tab_id: str
    prompt: str = Field(..., min_length=1)
    chart_type: Optional[Literal["bar", "line", "pie", "doughnut"]] = None
    title: Optional[str] = None
    explicit_data: Optional[Dict[str, Any]] = None

    async def build_row(self, gateway, context):
        content = {
            "prompt": self.prompt,
            "chartType": self.chart_type,
            "title": self.title,
            "data": self.explicit_data,
        }
        return {
            "tab_id": self.tab_id,
            "type": BlockType.CHART.value,
            "content": {k: v for k, v in content.items() if v is not None},
            "position": await next_position(gateway, "blocks", {"tab_id": self.tab_id}),
            "column": 0,
        }


# =============================================================================
# TASKS
# =============================================================================


class CreateTaskItem(CreateRowCommand):
    tool: Literal["create_task_item"] = "create_task_item"
    table: ClassVar[str] = "task_items"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("blocks", "task_block_id"),)

    task_block_id: str
    title: str = Field(..., min_length=1, max_length=500)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.NONE
    description: Optional[str] = None
    due_date: Optional[date] = None
    assignee_id: Optional[str] = None

    async def authorize(self, gateway, context):
        return await super().authorize(gateway, context) or await assignee_denied(gateway, context, self.assignee_id)

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        block = await gateway.select_one("blocks", "id, tab_id", match={"id": self.task_block_id})
        if block:
            row["tab_id"] = block["tab_id"]
            tab = await gateway.select_one("tabs", "project_id", match={"id": block["tab_id"]})
            if tab:
                row["project_id"] = tab["project_id"]
        existing = await gateway.select("task_items", "id", match={"task_block_id": self.task_block_id})
        row["display_order"] = len(existing)
        row["created_by"] = context.user_id
        row["updated_by"] = context.user_id
        return row


class UpdateTaskItem(UpdateRowCommand):
    tool: Literal["update_task_item"] = "update_task_item"
    table: ClassVar[str] = "task_items"
    id_field: ClassVar[str] = "task_id"

    task_id: str
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    description: Optional[str] = None
    due_date: Optional[date] = None


class BulkUpdateTaskItems(AICommand):
    tool: Literal["bulk_update_task_items"] = "bulk_update_task_items"

    task_ids: List[str] = Field(..., min_length=1)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None

    def _filters(self, context):
        return {"match": {"workspace_id": context.workspace_id}, "in_": ("id", self.task_ids)}

    async def capture_undo(self, gateway, context):
        rows = await gateway.select("task_items", **self._filters(context))
        return restore_rows("task_items", rows)

    async def run(self, gateway, context):
        values = self.payload("task_ids")
        if not values:
            return ToolCallResult.fail("No fields to update")
        rows = await gateway.update("task_items", values, **self._filters(context))
        result = ToolCallResult.ok({"updated": len(rows), "taskIds": [r["id"] for r in rows]})
        missing = sorted(set(self.task_ids) - {str(r["id"]) for r in rows})
        if missing:
            result.warnings = [f"Tasks not found: {', '.join(missing)}"]
        return result


class DeleteTaskItem(DeleteRowCommand):
    tool: Literal["delete_task_item"] = "delete_task_item"
    table: ClassVar[str] = "task_items"
    id_field: ClassVar[str] = "task_id"

    task_id: str


class CreateTaskSubtask(CreateRowCommand):
    tool: Literal["create_task_subtask"] = "create_task_subtask"
    table: ClassVar[str] = "task_subtasks"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("task_items", "task_id"),)

    task_id: str
    title: str = Field(..., min_length=1)
    completed: bool = False

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        existing = await gateway.select("task_subtasks", "id", match={"task_id": self.task_id})
        row["display_order"] = len(existing)
        return row


class UpdateTaskSubtask(UpdateRowCommand):
    tool: Literal["update_task_subtask"] = "update_task_subtask"
    table: ClassVar[str] = "task_subtasks"
    id_field: ClassVar[str] = "subtask_id"

    subtask_id: str
    title: Optional[str] = Field(None, min_length=1)
    completed: Optional[bool] = None


class DeleteTaskSubtask(DeleteRowCommand):
    tool: Literal["delete_task_subtask"] = "delete_task_subtask"
    table: ClassVar[str] = "task_subtasks"
    id_field: ClassVar[str] = "subtask_id"

    subtask_id: str


class CreateTaskComment(CreateRowCommand):
    tool: Literal["create_task_comment"] = "create_task_comment"
    table: ClassVar[str] = "task_comments"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("task_items", "task_id"),)

    task_id: str
    text: str = Field(..., min_length=1)

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        row["author_id"] = context.user_id
        return row


class SetTaskTags(AICommand):
    """Replace the tags on a task."""

    tool: Literal["set_task_tags"] = "set_task_tags"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("task_items", "task_id"),)

    task_id: str
    tag_ids: List[str] = Field(default_factory=list)

    async def capture_undo(self, gateway, context):
        links = await gateway.select("task_tag_links", match={"task_id": self.task_id})
        steps = [UndoStep(table="task_tag_links", action=UndoAction.DELETE.value, where={"task_id": self.task_id})]
        return steps + restore_rows("task_tag_links", links, on_conflict="task_id,tag_id")

    async def run(self, gateway, context):
        tag_ids = list(dict.fromkeys(self.tag_ids))
        if tag_ids:
            tags = await gateway.select(
                "task_tags", "id", match={"workspace_id": context.workspace_id}, in_=("id", tag_ids)
            )
            missing = set(tag_ids) - {str(t["id"]) for t in tags}
            if missing:
                return ToolCallResult.fail(f"Tags not found: {', '.join(sorted(missing))}")
        await gateway.delete("task_tag_links", match={"task_id": self.task_id})
        if tag_ids:
            await gateway.insert("task_tag_links", [{"task_id": self.task_id, "tag_id": t} for t in tag_ids])
        return ToolCallResult.ok({"taskId": self.task_id, "tagIds": tag_ids})


class Assignee(BaseModel):
    id: str
    name: str


class SetTaskAssignees(AICommand):
    """Replace the assignees on a task, keeping the Assignee property in sync."""

    tool: Literal["set_task_assignees"] = "set_task_assignees"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("task_items", "task_id"),)

    task_id: str
    assignees: List[Assignee] = Field(default_factory=list)

    async def _assignee_definition(self, gateway, context) -> Optional[str]:
        definition = await gateway.select_one(
            "property_definitions",
            "id",
            match={"workspace_id": context.workspace_id, "name": "Assignee", "type": "person"},
        )
        return str(definition["id"]) if definition else None

    async def capture_undo(self, gateway, context):
        previous = await gateway.select("task_assignees", match={"task_id": self.task_id})
        steps = delete_by_ids("task_assignees", [self.task_id], id_column="task_id")
        steps += restore_rows("task_assignees", previous, on_conflict=None)

        definition_id = await self._assignee_definition(gateway, context)
        if definition_id:
            where = {
                "workspace_id": context.workspace_id,
                "entity_type": EntityType.TASK.value,
                "property_definition_id": definition_id,
            }
            props = await gateway.select("entity_properties", match={**where, "entity_id": self.task_id})
            steps.append(
                UndoStep(
                    table="entity_properties",
                    action=UndoAction.DELETE.value,
                    ids=[self.task_id],
                    id_column="entity_id",
                    where=where,
                )
            )
            steps += restore_rows("entity_properties", props, on_conflict=ENTITY_PROPERTY_CONFLICT)
        return steps

    async def run(self, gateway, context):
        await gateway.delete("task_assignees", match={"task_id": self.task_id})
        if self.assignees:
            await gateway.insert(
                "task_assignees",
                [{"task_id": self.task_id, "assignee_id": a.id, "assignee_name": a.name} for a in self.assignees],
            )
        definition_id = await self._assignee_definition(gateway, context)
        if definition_id:
            key = {
                "workspace_id": context.workspace_id,
                "entity_type": EntityType.TASK.value,
                "entity_id": self.task_id,
                "property_definition_id": definition_id,
            }
            if self.assignees:
                value = [{"id": a.id, "name": a.name} for a in self.assignees]
                await gateway.upsert(
                    "entity_properties", [{**key, "value": value}], on_conflict=ENTITY_PROPERTY_CONFLICT
                )
            else:
                await gateway.delete("entity_properties", match=key)
        return ToolCallResult.ok({"taskId": self.task_id, "assignees": [a.model_dump() for a in self.assignees]})


# =============================================================================
# ENTITY PROPERTIES
# =============================================================================


class EntityPropertyCommand(AICommand):
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("property_definitions", "property_definition_id"),)

    entity_type: EntityType
    entity_id: str
    property_definition_id: str

    def key(self, context) -> Dict[str, Any]:
        return {
            "workspace_id": context.workspace_id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "property_definition_id": self.property_definition_id,
        }

    async def capture_undo(self, gateway, context):
        rows = await gateway.select("entity_properties", match=self.key(context))
        if rows:
            return restore_rows("entity_properties", rows, on_conflict=ENTITY_PROPERTY_CONFLICT)
        return [UndoStep(table="entity_properties", action=UndoAction.DELETE.value, where=self.key(context))]


class SetEntityProperty(EntityPropertyCommand):
    tool: Literal["set_entity_property"] = "set_entity_property"

    value: Any = None

    async def run(self, gateway, context):
        rows = await gateway.upsert(
            "entity_properties",
            [{**self.key(context), "value": self.value}],
            on_conflict=ENTITY_PROPERTY_CONFLICT,
        )
        return ToolCallResult.ok(rows[0] if rows else None)


class RemoveEntityProperty(EntityPropertyCommand):
    tool: Literal["remove_entity_property"] = "remove_entity_property"

    async def run(self, gateway, context):
        rows = await gateway.delete("entity_properties", match=self.key(context))
        return ToolCallResult.ok({"removed": len(rows)})


# =============================================================================
# CLIENTS, DOCS, TABLE ROWS
# =============================================================================


class CreateClient(CreateRowCommand):
    tool: Literal["create_client"] = "create_client"
    table: ClassVar[str] = "clients"

    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None


class UpdateClient(UpdateRowCommand):
    tool: Literal["update_client"] = "update_client"
    table: ClassVar[str] = "clients"
    id_field: ClassVar[str] = "client_id"

    client_id: str
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None


class DeleteClient(DeleteRowCommand):
    tool: Literal["delete_client"] = "delete_client"
    table: ClassVar[str] = "clients"
    id_field: ClassVar[str] = "client_id"

    client_id: str


class CreateDoc(CreateRowCommand):
    tool: Literal["create_doc"] = "create_doc"
    table: ClassVar[str] = "docs"

    title: str = "Untitled Document"
    content: Optional[Dict[str, Any]] = None

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        row["created_by"] = context.user_id
        row["last_edited_by"] = context.user_id
        return row


class UpdateDoc(UpdateRowCommand):
    tool: Literal["update_doc"] = "update_doc"
    table: ClassVar[str] = "docs"
    id_field: ClassVar[str] = "doc_id"

    doc_id: str
    title: Optional[str] = Field(None, min_length=1)
    content: Optional[Dict[str, Any]] = None


class ArchiveDoc(UpdateRowCommand):
    tool: Literal["archive_doc"] = "archive_doc"
    table: ClassVar[str] = "docs"
    id_field: ClassVar[str] = "doc_id"

    doc_id: str

    def changes(self):
        return {"is_archived": True}


class DeleteDoc(DeleteRowCommand):
    tool: Literal["delete_doc"] = "delete_doc"
    table: ClassVar[str] = "docs"
    id_field: ClassVar[str] = "doc_id"

    doc_id: str


class CreateRow(CreateRowCommand):
    tool: Literal["create_row"] = "create_row"
    table: ClassVar[str] = "table_rows"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tables", "table_id"),)

    table_id: str
    data: Dict[str, Any] = Field(default_factory=dict)

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        last = await gateway.select(
            "table_rows", "order", match={"table_id": self.table_id},
            order_by="order", descending=True, limit=1,
        )
        row["order"] = (float(last[0]["order"]) + 1) if last else 1
        row["created_by"] = context.user_id
        row["updated_by"] = context.user_id
        return row


class UpdateRow(UpdateRowCommand):
    """Merge values into a table row's data."""

    tool: Literal["update_row"] = "update_row"
    table: ClassVar[str] = "table_rows"
    id_field: ClassVar[str] = "row_id"

    row_id: str
    data: Dict[str, Any] = Field(..., min_length=1)

    async def run(self, gateway, context):
        current = await gateway.select_one("table_rows", "data", match={"id": self.row_id})
        if current is None:
            return self.not_found()
        merged = {**(current.get("data") or {}), **self.data}
        rows = await gateway.update(
            "table_rows", {"data": merged, "updated_by": context.user_id}, match={"id": self.row_id}
        )
        return ToolCallResult.ok(rows[0] if rows else None)


class DeleteRows(AICommand):
    tool: Literal["delete_rows"] = "delete_rows"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tables", "table_id"),)

    table_id: str
    row_ids: List[str] = Field(..., min_length=1)

    def _filters(self):
        return {"match": {"table_id": self.table_id}, "in_": ("id", self.row_ids)}

    async def capture_undo(self, gateway, context):
        rows = await gateway.select("table_rows", **self._filters())
        return restore_rows("table_rows", rows)

    async def run(self, gateway, context):
        rows = await gateway.delete("table_rows", **self._filters())
        return ToolCallResult.ok({"deleted": len(rows)})


class RowData(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class BulkInsertRows(AICommand):
    """Insert several rows at the end of a table; undo deletes them again."""

    tool: Literal["bulk_insert_rows"] = "bulk_insert_rows"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tables", "table_id"),)

    table_id: str
    rows: List[RowData] = Field(..., min_length=1, max_length=500)

    async def run(self, gateway, context):
        start = await next_position(gateway, "table_rows", {"table_id": self.table_id}, column="order") or 1
        created = await gateway.insert(
            "table_rows",
            [
                {
                    "table_id": self.table_id,
                    "data": row.data,
                    "order": start + index,
                    "created_by": context.user_id,
                    "updated_by": context.user_id,
                }
                for index, row in enumerate(self.rows)
            ],
        )
        return ToolCallResult.ok({"inserted": len(created), "rowIds": [str(r["id"]) for r in created]})

    def undo_after(self, result):
        data = result.data if isinstance(result.data, dict) else {}
        return delete_by_ids("table_rows", data.get("rowIds") or [])


class BulkUpdateRows(AICommand):
    """Merge the same cell values into several rows of one table."""

    tool: Literal["bulk_update_rows"] = "bulk_update_rows"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tables", "table_id"),)

    table_id: str
    row_ids: List[str] = Field(..., min_length=1)
    updates: Dict[str, Any] = Field(..., min_length=1)

    def _filters(self):
        return {"match": {"table_id": self.table_id}, "in_": ("id", self.row_ids)}

    async def capture_undo(self, gateway, context):
        rows = await gateway.select("table_rows", **self._filters())
        return restore_rows("table_rows", rows)

    async def run(self, gateway, context):
        rows = await gateway.select("table_rows", "id, data", **self._filters())
        for row in rows:
            merged = {**(row.get("data") or {}), **self.updates}
            await gateway.update(
                "table_rows", {"data": merged, "updated_by": context.user_id}, match={"id": row["id"]}
            )
        result = ToolCallResult.ok({"updated": len(rows)})
        missing = sorted(set(self.row_ids) - {str(r["id"]) for r in rows})
        if missing:
            result.warnings = [f"Rows not found: {', '.join(missing)}"]
        return result


# =============================================================================
# TABLES, FIELDS, ROW COMMENTS
# =============================================================================


class CreateTable(CreateRowCommand):
    """Create a table; with a tab_id a table block is added so it shows up."""

    tool: Literal["create_table"] = "create_table"
    table: ClassVar[str] = "tables"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("projects", "project_id"), ("tabs", "tab_id"))

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    project_id: Optional[str] = None
    tab_id: Optional[str] = None

    async def build_row(self, gateway, context):
        row = self.payload("tab_id")
        row["workspace_id"] = context.workspace_id
        row["created_by"] = context.user_id
        return row

    async def run(self, gateway, context):
        result = await super().run(gateway, context)
        if not result.success or not self.tab_id:
            return result
        block = {
            "tab_id": self.tab_id,
            "type": BlockType.TABLE.value,
            "content": {"tableId": result.data["id"]},
            "position": await next_position(gateway, "blocks", {"tab_id": self.tab_id}),
            "column": 0,
        }
        try:
            created = await gateway.insert("blocks", [block])
        except GatewayError as e:
            result.warnings = [f"Table created but its block could not be added: {e}"]
            return result
        result.data = {**result.data, "blockId": created[0]["id"] if created else None}
        return result

    def undo_after(self, result):
        data = result.data if isinstance(result.data, dict) else {}
        return delete_by_ids("blocks", [data.get("blockId")]) + delete_by_ids("tables", [data.get("id")])


class UpdateTable(UpdateRowCommand):
    tool: Literal["update_table"] = "update_table"
    table: ClassVar[str] = "tables"
    id_field: ClassVar[str] = "table_id"

    table_id: str
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None


class DeleteTable(DeleteRowCommand):
    """Delete a table. Its fields and rows go with it, so undo restores them too."""

    tool: Literal["delete_table"] = "delete_table"
    table: ClassVar[str] = "tables"
    id_field: ClassVar[str] = "table_id"

    table_id: str

    async def capture_undo(self, gateway, context):
        steps = await super().capture_undo(gateway, context)
        if steps:
            for child in ("table_fields", "table_rows"):
                rows = await gateway.select(child, match={"table_id": self.target_id})
                steps += restore_rows(child, rows)
        return steps


class CreateField(CreateRowCommand):
    tool: Literal["create_field"] = "create_field"
    table: ClassVar[str] = "table_fields"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("tables", "table_id"),)

    table_id: str
    name: str = Field(..., min_length=1)
    type: FieldType
    config: Dict[str, Any] = Field(default_factory=dict)
    is_primary: bool = False

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        row["order"] = await next_position(gateway, "table_fields", {"table_id": self.table_id}, column="order")
        return row


class UpdateField(UpdateRowCommand):
    tool: Literal["update_field"] = "update_field"
    table: ClassVar[str] = "table_fields"
    id_field: ClassVar[str] = "field_id"

    field_id: str
    name: Optional[str] = Field(None, min_length=1)
    config: Optional[Dict[str, Any]] = None


class DeleteField(DeleteRowCommand):
    tool: Literal["delete_field"] = "delete_field"
    table: ClassVar[str] = "table_fields"
    id_field: ClassVar[str] = "field_id"

    field_id: str


class CreateComment(CreateRowCommand):
    """Comment on a table row."""

    tool: Literal["create_comment"] = "create_comment"
    table: ClassVar[str] = "table_comments"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("table_rows", "row_id"),)

    row_id: str
    text: str = Field(..., min_length=1)

    async def build_row(self, gateway, context):
        return {"row_id": self.row_id, "content": self.text, "user_id": context.user_id}


class UpdateComment(UpdateRowCommand):
    tool: Literal["update_comment"] = "update_comment"
    table: ClassVar[str] = "table_comments"
    id_field: ClassVar[str] = "comment_id"

    comment_id: str
    text: str = Field(..., min_length=1)

    def changes(self):
        return {"content": self.text}


class DeleteComment(DeleteRowCommand):
    tool: Literal["delete_comment"] = "delete_comment"
    table: ClassVar[str] = "table_comments"
    id_field: ClassVar[str] = "comment_id"

    comment_id: str


# =============================================================================
# TIMELINES
# =============================================================================


class CreateTimelineEvent(CreateRowCommand):
    tool: Literal["create_timeline_event"] = "create_timeline_event"
    table: ClassVar[str] = "timeline_events"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (("blocks", "timeline_block_id"),)

    timeline_block_id: str
    title: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    status: TimelineEventStatus = TimelineEventStatus.PLANNED
    progress: int = Field(default=0, ge=0, le=100)
    notes: Optional[str] = None
    color: Optional[str] = None
    is_milestone: bool = False
    assignee_id: Optional[str] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    async def authorize(self, gateway, context):
        denied = await super().authorize(gateway, context)
        if denied:
            return denied
        block = await gateway.select_one("blocks", "type", match={"id": self.timeline_block_id})
        if block and block.get("type") != BlockType.TIMELINE.value:
            return f"Block is not a timeline: {self.timeline_block_id}"
        return await assignee_denied(gateway, context, self.assignee_id)

    async def build_row(self, gateway, context):
        row = await super().build_row(gateway, context)
        existing = await gateway.select(
            "timeline_events", "id", match={"timeline_block_id": self.timeline_block_id}
        )
        row["display_order"] = len(existing)
        row["created_by"] = context.user_id
        row["updated_by"] = context.user_id
        return row


class UpdateTimelineEvent(UpdateRowCommand):
    tool: Literal["update_timeline_event"] = "update_timeline_event"
    table: ClassVar[str] = "timeline_events"
    id_field: ClassVar[str] = "event_id"

    event_id: str
    title: Optional[str] = Field(None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[TimelineEventStatus] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    color: Optional[str] = None
    is_milestone: Optional[bool] = None
    assignee_id: Optional[str] = None

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    async def authorize(self, gateway, context):
        return await super().authorize(gateway, context) or await assignee_denied(gateway, context, self.assignee_id)


class DeleteTimelineEvent(DeleteRowCommand):
    """Delete an event. Dependencies that touch it are removed with it."""

    tool: Literal["delete_timeline_event"] = "delete_timeline_event"
    table: ClassVar[str] = "timeline_events"
    id_field: ClassVar[str] = "event_id"

    event_id: str

    async def capture_undo(self, gateway, context):
        steps = await super().capture_undo(gateway, context)
        if steps:
            dependencies: Dict[str, Row] = {}
            for column in ("from_id", "to_id"):
                for row in await gateway.select("timeline_dependencies", match={column: self.target_id}):
                    dependencies[str(row["id"])] = row
            steps += restore_rows("timeline_dependencies", list(dependencies.values()))
        return steps


class CreateTimelineDependency(CreateRowCommand):
    tool: Literal["create_timeline_dependency"] = "create_timeline_dependency"
    table: ClassVar[str] = "timeline_dependencies"
    guards: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("blocks", "timeline_block_id"),
        ("timeline_events", "from_event_id"),
        ("timeline_events", "to_event_id"),
    )

    timeline_block_id: str
    from_event_id: str
    to_event_id: str
    dependency_type: DependencyType = DependencyType.FINISH_TO_START

    @model_validator(mode="after")
    def _not_self_referencing(self):
        if self.from_event_id == self.to_event_id:
            raise ValueError("an event cannot depend on itself")
        return self

    async def build_row(self, gateway, context):
        return {
            "workspace_id": context.workspace_id,
            "timeline_block_id": self.timeline_block_id,
            "from_id": self.from_event_id,
            "to_id": self.to_event_id,
            "dependency_type": self.dependency_type.value,
            "created_by": context.user_id,
        }


class DeleteTimelineDependency(DeleteRowCommand):
    tool: Literal["delete_timeline_dependency"] = "delete_timeline_dependency"
    table: ClassVar[str] = "timeline_dependencies"
    id_field: ClassVar[str] = "dependency_id"

    dependency_id: str


# =============================================================================
# PROPERTY DEFINITIONS, FILES
# =============================================================================


class CreatePropertyDefinition(CreateRowCommand):
    tool: Literal["create_property_definition"] = "create_property_definition"
    table: ClassVar[str] = "property_definitions"

    name: str = Field(..., min_length=1)
    type: PropertyType
    options: List[Dict[str, Any]] = Field(default_factory=list)


class UpdatePropertyDefinition(UpdateRowCommand):
    tool: Literal["update_property_definition"] = "update_property_definition"
    table: ClassVar[str] = "property_definitions"
    id_field: ClassVar[str] = "definition_id"

    definition_id: str
    name: Optional[str] = Field(None, min_length=1)
    options: Optional[List[Dict[str, Any]]] = None


class DeletePropertyDefinition(DeleteRowCommand):
    """Delete a definition. Values set with it go too, so undo restores them."""

    tool: Literal["delete_property_definition"] = "delete_property_definition"
    table: ClassVar[str] = "property_definitions"
    id_field: ClassVar[str] = "definition_id"

    definition_id: str

    async def capture_undo(self, gateway, context):
        steps = await super().capture_undo(gateway, context)
        if steps:
            values = await gateway.select(
                "entity_properties",
                match={"workspace_id": context.workspace_id, "property_definition_id": self.target_id},
            )
            steps += restore_rows("entity_properties", values)
        return steps


class RenameFile(UpdateRowCommand):
    """Change a file's display name. Storage is untouched."""

    tool: Literal["rename_file"] = "rename_file"
    table: ClassVar[str] = "files"
    id_field: ClassVar[str] = "file_id"

    file_id: str
    file_name: str = Field(..., min_length=1)


# =============================================================================
# DISPATCH
# =============================================================================

AnyCommand = Annotated[
    Union[
        SearchTasks,
        SearchProjects,
        SearchBlocks,
        GetEntityById,
        ReindexWorkspaceContent,
        CreateProject,
        UpdateProject,
        DeleteProject,
        CreateTab,
        UpdateTab,
        DeleteTab,
        CreateBlock,
        UpdateBlock,
        MoveBlock,
        DeleteBlock,
        CreateChartBlock,
        CreateTaskItem,
        UpdateTaskItem,
        BulkUpdateTaskItems,
        DeleteTaskItem,
        CreateTaskSubtask,
        UpdateTaskSubtask,
        DeleteTaskSubtask,
        CreateTaskComment,
        SetTaskTags,
        SetTaskAssignees,
        SetEntityProperty,
        RemoveEntityProperty,
        CreateClient,
        UpdateClient,
        DeleteClient,
        CreateDoc,
        UpdateDoc,
        ArchiveDoc,
        DeleteDoc,
        CreateRow,
        UpdateRow,
        DeleteRows,
        BulkInsertRows,
        BulkUpdateRows,
        CreateTable,
        UpdateTable,
        DeleteTable,
        CreateField,
        UpdateField,
        DeleteField,
        CreateComment,
        UpdateComment,
        DeleteComment,
        CreateTimelineEvent,
        UpdateTimelineEvent,
        DeleteTimelineEvent,
        CreateTimelineDependency,
        DeleteTimelineDependency,
        CreatePropertyDefinition,
        UpdatePropertyDefinition,
        DeletePropertyDefinition,
        RenameFile,
    ],
    Field(discriminator="tool"),
]

COMMAND_ADAPTER: TypeAdapter = TypeAdapter(AnyCommand)

COMMAND_TYPES: Dict[str, type] = {
    cls.model_fields["tool"].default: cls for cls in get_args(get_args(AnyCommand)[0])
}


def parse_command(tool_name: str, arguments: Dict[str, Any]) -> AICommand:
    """Validate tool arguments into a command. Raises pydantic.ValidationError."""
    return COMMAND_ADAPTER.validate_python({**arguments, "tool": tool_name})
