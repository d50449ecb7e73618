"""Drains queued enhancement jobs with bounded concurrency.

Used by ``framechain enhance drain`` for jobs that were queued without
background processing (or left behind by a restarted API process).
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from tqdm import tqdm

from ..errors import FrameChainError
from .models import EnhancementResult
from .repositories import EnhancementJobRepository
from .service import EnhancementService

logger = logging.getLogger(__name__)


class EnhancementWorker:
    """Processes queued jobs through EnhancementService.

    Each job is independent: a failing job is recorded as failed and the
    remaining jobs still run.
    """

    def __init__(self, service: EnhancementService, jobs: EnhancementJobRepository, concurrency: int = 2):
        """Initialize worker.

        Args:
            service: Enhancement service that owns job processing
            jobs: Job repository used to find queued work
            concurrency: Max jobs processed at once
        """
        self.service = service
        self.jobs = jobs
        self.concurrency = max(1, concurrency)

    async def drain(self, max_jobs: Optional[int] = None, show_progress: bool = True) -> Dict[str, float]:
        """Process queued jobs until none are left (or ``max_jobs`` is reached).

        Returns:
            Stats dict: total, succeeded, failed, skipped, duration_s
        """
        queued = await self.jobs.list_queued(limit=max_jobs)
        stats = {"total": len(queued), "succeeded": 0, "failed": 0, "skipped": 0, "duration_s": 0.0}
        if not queued:
            return stats

        start = time.time()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(job_id: str) -> Optional[EnhancementResult]:
            async with semaphore:
                try:
                    return await self.service.process(job_id)
                except FrameChainError as e:
                    # Picked up by another worker or removed since listing
                    logger.info("Skipping job %s: %s", job_id, e)
                    return None

        tasks: List[asyncio.Task] = [asyncio.create_task(run(job.id)) for job in queued]
        with tqdm(total=len(tasks), desc="Enhancing segments", unit="job", disable=not show_progress) as pbar:
            for finished in asyncio.as_completed(tasks):
                result = await finished
                if result is None:
                    stats["skipped"] += 1
                elif result.success:
                    stats["succeeded"] += 1
                else:
                    stats["failed"] += 1
                pbar.update(1)

        stats["duration_s"] = round(time.time() - start, 3)
        return stats
