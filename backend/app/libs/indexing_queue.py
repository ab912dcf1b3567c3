"""Queue of search indexing jobs stored in the indexing_jobs table.

A resource (block or file) has at most one job; enqueueing it again while a
job exists is a no-op.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, TypedDict

from app.libs.data_gateway import DataGateway, GatewayError, Row
from app.libs.models import IndexingJobStatus

logger = logging.getLogger(__name__)

JOB_TABLE = "indexing_jobs"
JOB_CONFLICT = "resource_type,resource_id"
MAX_ERROR_LENGTH = 1000


class JobRequest(TypedDict):
    workspace_id: str
    resource_type: str
    resource_id: str


def _pending(job: JobRequest) -> Row:
    return {
        "workspace_id": job["workspace_id"],
        "resource_type": job["resource_type"],
        "resource_id": job["resource_id"],
        "status": IndexingJobStatus.PENDING.value,
    }


class IndexingQueue:
    def __init__(self, gateway: DataGateway):
        self.gateway = gateway

    async def enqueue(self, workspace_id: str, resource_type: str, resource_id: str) -> Optional[str]:
        """Enqueue one resource. Returns the new job id, or None if one already existed."""
        job: JobRequest = {
            "workspace_id": workspace_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        try:
            created = await self.gateway.upsert(
                JOB_TABLE, [_pending(job)], on_conflict=JOB_CONFLICT, ignore_duplicates=True
            )
        except GatewayError:
            logger.exception("Failed to enqueue indexing job for %s %s", resource_type, resource_id)
            raise
        return str(created[0]["id"]) if created else None

    async def bulk_enqueue(self, jobs: List[JobRequest]) -> None:
        if not jobs:
            return
        try:
            await self.gateway.upsert(
                JOB_TABLE, [_pending(j) for j in jobs], on_conflict=JOB_CONFLICT, ignore_duplicates=True
            )
        except GatewayError:
            logger.exception("Failed to bulk enqueue %d indexing jobs", len(jobs))
            raise

    async def pick_next_job(self) -> Optional[Row]:
        """Claim the oldest pending job by flipping it to processing.

        Returns None when there is nothing pending or another worker claimed
        the job first.
        """
        job = await self.gateway.select_one(
            JOB_TABLE, match={"status": IndexingJobStatus.PENDING.value}, order_by="created_at"
        )
        if job is None:
            return None
        locked = await self.gateway.update(
            JOB_TABLE,
            {
                "status": IndexingJobStatus.PROCESSING.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            match={"id": job["id"], "status": IndexingJobStatus.PENDING.value},
        )
        return locked[0] if locked else None

    async def complete_job(self, job_id: str) -> None:
        await self.gateway.update(
            JOB_TABLE,
            {"status": IndexingJobStatus.COMPLETED.value, "error_message": None},
            match={"id": job_id},
        )

    async def fail_job(self, job_id: str, error: str) -> None:
        await self.gateway.update(
            JOB_TABLE,
            {"status": IndexingJobStatus.FAILED.value, "error_message": error[:MAX_ERROR_LENGTH]},
            match={"id": job_id},
        )
