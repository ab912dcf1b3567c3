"""
Tests for the SQL built by the Postgres data gateway.
"""

import pytest

from app.libs.data_gateway import (
    PRIMARY_KEY_SQL,
    GatewayError,
    PostgresGateway,
    build_delete,
    build_insert,
    build_select,
    build_update,
    quote_ident,
    record_to_dict,
)


class TestQuoteIdent:
    def test_quotes_valid_names(self):
        assert quote_ident("task_items") == '"task_items"'
        assert quote_ident("order") == '"order"'

    @pytest.mark.parametrize("name", ["", "tabs; drop table x", 'a"b', "1abc", "a.b"])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(GatewayError):
            quote_ident(name)


class TestBuildSelect:
    def test_filters_order_and_paging(self):
        sql, args = build_select(
            "tabs", "id", match={"project_id": "p1", "parent_tab_id": None},
            order_by="position", descending=True, limit=10, offset=20,
        )
        assert sql == (
            'SELECT "id" FROM "tabs" WHERE "project_id" = $1 AND "parent_tab_id" IS NULL'
            ' ORDER BY "position" DESC LIMIT $2 OFFSET $3'
        )
        assert args == ["p1", 10, 20]

    def test_in_filter_uses_any(self):
        sql, args = build_select("blocks", "id, tab_id", in_=("tab_id", ("t1", "t2")))
        assert sql == 'SELECT "id", "tab_id" FROM "blocks" WHERE "tab_id" = ANY($1)'
        assert args == [["t1", "t2"]]

    def test_star_and_no_filter(self):
        sql, args = build_select("projects")
        assert sql == 'SELECT * FROM "projects"'
        assert args == []


class TestBuildInsert:
    def test_insert_expands_json_rows(self):
        rows = [{"id": "a", "name": "One"}, {"id": "b", "position": 2}]
        sql, args = build_insert("tabs", rows)
        assert sql == (
            'INSERT INTO "tabs" ("id", "name", "position") '
            'SELECT "id", "name", "position" FROM jsonb_populate_recordset(NULL::"tabs", $1::jsonb)'
            " RETURNING *"
        )
        assert args == [rows]

    def test_upsert_updates_non_key_columns(self):
        sql, _ = build_insert(
            "task_tag_links", [{"task_id": "t", "tag_id": "g", "note": "x"}],
            on_conflict="task_id,tag_id", upsert=True,
        )
        assert 'ON CONFLICT ("task_id", "tag_id") DO UPDATE SET "note" = EXCLUDED."note"' in sql

    def test_upsert_without_conflict_columns_is_rejected(self):
        with pytest.raises(GatewayError):
            build_insert("tabs", [{"id": "a", "name": "x"}], upsert=True)

    def test_ignore_duplicates_does_nothing_on_conflict(self):
        sql, _ = build_insert(
            "indexing_jobs", [{"resource_type": "block", "resource_id": "b"}],
            on_conflict="resource_type,resource_id", ignore_duplicates=True, upsert=True,
        )
        assert 'ON CONFLICT ("resource_type", "resource_id") DO NOTHING' in sql

    def test_only_key_columns_does_nothing_on_conflict(self):
        sql, _ = build_insert("task_tag_links", [{"task_id": "t", "tag_id": "g"}], on_conflict="task_id,tag_id", upsert=True)
        assert sql.endswith("DO NOTHING RETURNING *")

    def test_rows_without_columns_are_rejected(self):
        with pytest.raises(GatewayError):
            build_insert("tabs", [{}])


class TestBuildUpdate:
    def test_update_reads_values_through_jsonb(self):
        sql, args = build_update("task_items", {"status": "done"}, match={"id": "t1", "workspace_id": "w"})
        assert sql == (
            'UPDATE "task_items" SET "status" = src."status" '
            'FROM jsonb_populate_record(NULL::"task_items", $1::jsonb) AS src'
            ' WHERE "task_items"."id" = $2 AND "task_items"."workspace_id" = $3'
            ' RETURNING "task_items".*'
        )
        assert args == [{"status": "done"}, "t1", "w"]

    def test_update_requires_filter(self):
        with pytest.raises(GatewayError):
            build_update("task_items", {"status": "done"})

    def test_update_requires_values(self):
        with pytest.raises(GatewayError):
            build_update("task_items", {}, match={"id": "t1"})


class TestBuildDelete:
    def test_delete_with_where_and_ids(self):
        sql, args = build_delete("entity_properties", match={"entity_type": "task"}, in_=("entity_id", ["t1"]))
        assert sql == 'DELETE FROM "entity_properties" WHERE "entity_type" = $1 AND "entity_id" = ANY($2) RETURNING *'
        assert args == ["task", ["t1"]]

    def test_delete_requires_filter(self):
        with pytest.raises(GatewayError):
            build_delete("tabs")


def test_record_to_dict_stringifies_uuids():
    from uuid import UUID

    value = UUID("12345678-1234-5678-1234-567812345678")
    assert record_to_dict({"id": value, "n": 1}) == {"id": str(value), "n": 1}


class RecordingConnection:
    def __init__(self, pool):
        self.pool = pool

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def fetch(self, sql, *args):
        self.pool.queries.append((sql, list(args)))
        return self.pool.replies.pop(0) if self.pool.replies else []


class RecordingPool:
    """asyncpg pool stand-in that records queries and returns scripted records."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.queries = []

    def acquire(self):
        return RecordingConnection(self)


class TestPostgresUpsert:
    @pytest.mark.asyncio
    async def test_link_table_upsert_targets_its_primary_key(self):
        pool = RecordingPool([{"attname": "task_id"}, {"attname": "tag_id"}])
        gateway = PostgresGateway(pool)

        await gateway.upsert("task_tag_links", [{"task_id": "t", "tag_id": "g"}])
        await gateway.upsert("task_tag_links", [{"task_id": "t", "tag_id": "h"}])

        lookups = [q for q in pool.queries if q[0] == PRIMARY_KEY_SQL]
        assert lookups == [(PRIMARY_KEY_SQL, ['"task_tag_links"'])]
        upsert_sql = pool.queries[1][0]
        assert '"id"' not in upsert_sql
        assert upsert_sql.endswith('ON CONFLICT ("task_id", "tag_id") DO NOTHING RETURNING *')

    @pytest.mark.asyncio
    async def test_explicit_conflict_columns_skip_the_lookup(self):
        pool = RecordingPool()
        gateway = PostgresGateway(pool)

        await gateway.upsert("tabs", [{"id": "a", "name": "x"}], on_conflict="id")

        assert len(pool.queries) == 1
        assert 'ON CONFLICT ("id") DO UPDATE SET "name" = EXCLUDED."name"' in pool.queries[0][0]

    @pytest.mark.asyncio
    async def test_table_without_primary_key_is_an_error(self):
        gateway = PostgresGateway(RecordingPool([]))

        with pytest.raises(GatewayError, match="no primary key"):
            await gateway.upsert("tabs", [{"id": "a"}])

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_gateway_error(self):
        class RefusingPool:
            def acquire(self):
                raise ConnectionRefusedError("connection refused")

        with pytest.raises(GatewayError, match="connection refused"):
            await PostgresGateway(RefusingPool()).select("tabs")
