"""Background execution of analysis pipelines.

``PipelineRunner`` spawns one ``asyncio.Task`` per analysis, at most one in
flight per analysis ID, and caps concurrently executing runs with a semaphore
(``PIPELINE_MAX_WORKERS``). The done-callback is the completion handler: it
logs the outcome and forgets the task. Marking an analysis ``failed`` is done
by ``process_analysis`` itself.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, Optional

from ...errors import PipelineAlreadyRunningError
from .pipeline import process_analysis
from .stages import AnalysisStatus

logger = logging.getLogger(__name__)


def _max_workers() -> int:
    try:
        return max(1, int(os.getenv("PIPELINE_MAX_WORKERS", "4")))
    except ValueError:
        return 4


class PipelineRunner:
    def __init__(
        self,
        job: Callable[[Any], Awaitable[AnalysisStatus]] = process_analysis,
        max_workers: Optional[int] = None,
    ):
        self._job = job
        self._max_workers = max_workers or _max_workers()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_running(self, analysis_id: Any) -> bool:
        task = self._tasks.get(str(analysis_id))
        return task is not None and not task.done()

    def submit(self, analysis_id: Any) -> asyncio.Task:
        """Start the pipeline for *analysis_id* in the background.

        Must be called from a running event loop. Raises
        PipelineAlreadyRunningError if a run for this ID is in flight.
        """
        key = str(analysis_id)
        if self.is_running(key):
            raise PipelineAlreadyRunningError(analysis_id)

        task = asyncio.get_running_loop().create_task(self._run(analysis_id))
        self._tasks[key] = task
        task.add_done_callback(lambda t, key=key: self._on_done(key, t))
        logger.info("[RUNNER] Submitted %s (%d in flight)", key, len(self._tasks))
        return task

    async def wait(self, analysis_id: Any) -> Optional[AnalysisStatus]:
        """Await the in-flight run for *analysis_id*, if any."""
        task = self._tasks.get(str(analysis_id))
        if task is None:
            return None
        return await asyncio.shield(task)

    async def _run(self, analysis_id: Any) -> AnalysisStatus:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self._max_workers)
            self._semaphore_loop = loop
        async with self._semaphore:
            return await self._job(analysis_id)

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if task.cancelled():
            logger.warning("[RUNNER] Run for %s was cancelled", key)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[RUNNER] Run for %s crashed: %r", key, exc)
            return
        logger.info("[RUNNER] Run for %s finished: %s", key, task.result().value)


runner = PipelineRunner()
