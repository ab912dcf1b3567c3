"""
Test doubles: an in-memory DataGateway and a scripted chat-completion client.
"""

import copy
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.libs.data_gateway import DataGateway, GatewayError, split_columns

# Link tables keyed by their foreign keys, without an id column.
NO_ID_TABLES = {"task_tag_links", "task_assignees"}

# Primary keys used when an upsert names no conflict columns.
PRIMARY_KEYS = {
    "task_tag_links": "task_id,tag_id",
    "task_assignees": "task_id,assignee_id,assignee_name",
}


def _same(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return a is b
    return str(a) == str(b)


class InMemoryGateway(DataGateway):
    """DataGateway over plain dicts that records every call.

    `fail` maps (method, table) to an error message raised as GatewayError.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail: Dict[Tuple[str, str], str] = {}

    # -- helpers --------------------------------------------------------------

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def calls_to(self, method: str, table: Optional[str] = None) -> List[Dict[str, Any]]:
        return [kw for m, t, kw in self.calls if m == method and (table is None or t == table)]

    def _record(self, method: str, table: str, **kwargs) -> None:
        self.calls.append((method, table, kwargs))
        message = self.fail.get((method, table))
        if message is not None:
            raise GatewayError(message)

    @staticmethod
    def _matches(row, match, in_) -> bool:
        for column, value in (match or {}).items():
            if not _same(row.get(column), value):
                return False
        if in_ is not None:
            column, values = in_
            if str(row.get(column)) not in {str(v) for v in values}:
                return False
        return True

    def _new_row(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(dict(row))
        if table not in NO_ID_TABLES and not stored.get("id"):
            stored["id"] = str(uuid.uuid4())
        self.rows(table).append(stored)
        return stored

    # -- DataGateway ----------------------------------------------------------

    async def select(
        self,
        table,
        columns="*",
        *,
        match=None,
        in_=None,
        order_by=None,
        descending=False,
        limit=None,
        offset=None,
    ):
        self._record(
            "select", table, columns=columns, match=match, in_=in_,
            order_by=order_by, descending=descending, limit=limit, offset=offset,
        )
        found = [r for r in self.rows(table) if self._matches(r, match, in_)]
        if order_by:
            found.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or 0), reverse=descending)
        found = found[offset or 0:]
        if limit is not None:
            found = found[:limit]
        if columns.strip() != "*":
            wanted = split_columns(columns)
            found = [{c: r.get(c) for c in wanted} for r in found]
        return copy.deepcopy(found)

    async def insert(self, table, rows):
        self._record("insert", table, rows=copy.deepcopy(list(rows)))
        return copy.deepcopy([self._new_row(table, row) for row in rows])

    async def update(self, table, values, *, match=None, in_=None):
        self._record("update", table, values=copy.deepcopy(dict(values)), match=match, in_=in_)
        if not match and in_ is None:
            raise GatewayError(f"Refusing to update {table} without a filter")
        updated = []
        for row in self.rows(table):
            if self._matches(row, match, in_):
                row.update(copy.deepcopy(dict(values)))
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, *, match=None, in_=None):
        self._record("delete", table, match=copy.deepcopy(match), in_=copy.deepcopy(in_))
        if not match and in_ is None:
            raise GatewayError(f"Refusing to delete from {table} without a filter")
        kept, removed = [], []
        for row in self.rows(table):
            (removed if self._matches(row, match, in_) else kept).append(row)
        self.tables[table] = kept
        return copy.deepcopy(removed)

    async def upsert(self, table, rows, *, on_conflict=None, ignore_duplicates=False):
        self._record(
            "upsert", table, rows=copy.deepcopy(list(rows)),
            on_conflict=on_conflict, ignore_duplicates=ignore_duplicates,
        )
        keys = split_columns(on_conflict or PRIMARY_KEYS.get(table, "id"))
        written = []
        for row in rows:
            existing = None
            if all(row.get(k) is not None for k in keys):
                existing = next(
                    (r for r in self.rows(table) if all(_same(r.get(k), row[k]) for k in keys)),
                    None,
                )
            if existing is None:
                written.append(self._new_row(table, row))
            elif not ignore_duplicates:
                existing.update(copy.deepcopy(dict(row)))
                written.append(existing)
        return copy.deepcopy(written)


# =============================================================================
# Scripted chat-completion client
# =============================================================================


@dataclass
class FakeFunction:
    name: str
    arguments: str


@dataclass
class FakeToolCall:
    id: str
    function: FakeFunction
    type: str = "function"


@dataclass
class FakeMessage:
    content: Optional[str] = None
    tool_calls: Optional[List[FakeToolCall]] = None


@dataclass
class FakeChoice:
    message: FakeMessage


@dataclass
class FakeCompletion:
    choices: List[FakeChoice] = field(default_factory=list)


def tool_call_reply(*calls: Tuple[str, Dict[str, Any]], content: Optional[str] = None) -> FakeCompletion:
    """A completion asking for the given (name, arguments) tool calls."""
    tool_calls = [
        FakeToolCall(id=f"call_{i}", function=FakeFunction(name=name, arguments=json.dumps(args)))
        for i, (name, args) in enumerate(calls)
    ]
    return FakeCompletion(choices=[FakeChoice(message=FakeMessage(content=content, tool_calls=tool_calls))])


def text_reply(content: Optional[str]) -> FakeCompletion:
    return FakeCompletion(choices=[FakeChoice(message=FakeMessage(content=content))])


class _Completions:
    def __init__(self, client: "ScriptedClient"):
        self._client = client

    async def create(self, **kwargs):
        self._client.requests.append(copy.deepcopy(kwargs))
        if not self._client.script:
            raise AssertionError("chat completion called more times than scripted")
        reply = self._client.script.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class _Chat:
    def __init__(self, client: "ScriptedClient"):
        self.completions = _Completions(client)


class ScriptedClient:
    """Stands in for AsyncOpenAI; replies come from `script` in order."""

    def __init__(self, *script):
        self.script = list(script)
        self.requests: List[Dict[str, Any]] = []
        self.chat = _Chat(self)
