"""Enqueue every block and file of a workspace for search indexing."""

import logging
from typing import List, Optional, Sequence

from app.libs.data_gateway import DataGateway, GatewayError
from app.libs.indexing_queue import IndexingQueue, JobRequest
from app.libs.models import ReindexResult

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
IN_CHUNK_SIZE = 100
JOB_BATCH_SIZE = 500


class ReindexError(Exception):
    """Raised when the rows to reindex cannot be loaded."""


def chunked(items: Sequence, size: int) -> List[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]


async def _load_ids(gateway: DataGateway, table: str, **filters) -> List[str]:
    ids: List[str] = []
    offset = 0
    while True:
        try:
            page = await gateway.select(
                table, "id", order_by="id", limit=PAGE_SIZE, offset=offset, **filters
            )
        except GatewayError as e:
            raise ReindexError(f"Failed to load {table} for reindex") from e
        ids.extend(str(row["id"]) for row in page)
        if len(page) < PAGE_SIZE:
            return ids
        offset += PAGE_SIZE


async def fetch_ids_by_field(gateway: DataGateway, table: str, field: str, value: str) -> List[str]:
    return await _load_ids(gateway, table, match={field: value})


async def fetch_ids_by_in(gateway: DataGateway, table: str, field: str, values: Sequence[str]) -> List[str]:
    ids: List[str] = []
    for chunk in chunked(list(values), IN_CHUNK_SIZE):
        ids.extend(await _load_ids(gateway, table, in_=(field, chunk)))
    return ids


async def reindex_workspace_content(
    gateway: DataGateway,
    workspace_id: str,
    include_blocks: bool = True,
    include_files: bool = True,
    max_items: Optional[int] = None,
) -> ReindexResult:
    """Enqueue the workspace's files and blocks for indexing.

    ``max_items`` caps the total; files are counted first and blocks get
    whatever is left. Callers must check workspace membership beforehand.
    """
    limit = max(0, max_items) if max_items is not None else None
    jobs: List[JobRequest] = []
    file_count = block_count = 0

    if include_files:
        file_ids = await fetch_ids_by_field(gateway, "files", "workspace_id", workspace_id)
        if limit is not None:
            file_ids = file_ids[:limit]
        file_count = len(file_ids)
        jobs.extend(
            {"workspace_id": workspace_id, "resource_type": "file", "resource_id": i} for i in file_ids
        )

    if include_blocks:
        remaining = None if limit is None else max(0, limit - file_count)
        if remaining != 0:
            project_ids = await fetch_ids_by_field(gateway, "projects", "workspace_id", workspace_id)
            tab_ids = await fetch_ids_by_in(gateway, "tabs", "project_id", project_ids) if project_ids else []
            block_ids = await fetch_ids_by_in(gateway, "blocks", "tab_id", tab_ids) if tab_ids else []
            if remaining is not None:
                block_ids = block_ids[:remaining]
            block_count = len(block_ids)
            jobs.extend(
                {"workspace_id": workspace_id, "resource_type": "block", "resource_id": i} for i in block_ids
            )

    if jobs:
        queue = IndexingQueue(gateway)
        for batch in chunked(jobs, JOB_BATCH_SIZE):
            await queue.bulk_enqueue(list(batch))

    logger.info(
        "Reindex of workspace %s enqueued %d job(s) (%d files, %d blocks)",
        workspace_id, len(jobs), file_count, block_count,
    )
    return ReindexResult(workspace_id=workspace_id, enqueued=len(jobs), blocks=block_count, files=file_count)
