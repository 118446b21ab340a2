from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from .errors import JobNotFound, OrchestratorBusy
from .models import Job, JobStatus
from .session import ScrapeSession, utc_now_iso
from .storage import StorageBase

logger = logging.getLogger(__name__)

SessionFactoryFn = Callable[..., ScrapeSession]


class JobOrchestrator:
    """Runs scrape jobs one at a time in a background thread.

    The job table and the running flag share one lock, so two callers can
    never both start a job. A job is only ever replaced by the thread that
    drives it; readers get immutable snapshots.
    """

    def __init__(
        self,
        session_factory: SessionFactoryFn,
        sink: StorageBase,
        default_target: str = "Products",
        overwrite: bool = True,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._session_factory = session_factory
        self._sink = sink
        self._default_target = default_target
        self._overwrite = overwrite
        self._clock = clock

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scrape-job")
        self._lock = threading.Lock()
        self._jobs: Dict[int, Job] = {}
        self._futures: Dict[int, Future] = {}
        self._next_id = 1
        self._running = False

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._running

    def submit_run(
        self,
        urls: Sequence[str],
        target: Optional[str] = None,
        affiliate_tag: Optional[str] = None,
    ) -> int:
        """Start a job over urls and return its id without waiting for it.

        Raises OrchestratorBusy if a job is already running."""
        if isinstance(urls, str):
            raise TypeError("urls must be a sequence of URLs, not a single string")
        urls = tuple(u.strip() for u in urls if u and u.strip())
        if not urls:
            raise ValueError("At least one URL is required")

        with self._lock:
            if self._running:
                raise OrchestratorBusy("A scraping job is already running")
            job_id = self._next_id
            # The worker blocks on this lock before reading its job.
            self._futures[job_id] = self._executor.submit(self._run_job, job_id, affiliate_tag)
            self._next_id += 1
            self._running = True
            self._jobs[job_id] = Job(
                id=job_id,
                status=JobStatus.RUNNING,
                started_at=self._clock(),
                target=target or self._default_target,
                urls=urls,
                progress=f"0/{len(urls)}",
            )
        logger.info("Job %d started with %d URLs", job_id, len(urls))
        return job_id

    def get_job(self, job_id: int) -> Job:
        with self._lock:
            try:
                return self._jobs[job_id]
            except KeyError:
                raise JobNotFound(job_id) from None

    def list_jobs(self) -> List[Job]:
        with self._lock:
            return [self._jobs[k] for k in sorted(self._jobs)]

    def wait(self, job_id: int, timeout: Optional[float] = None) -> Job:
        """Block until the job finishes or timeout elapses, then return its snapshot.

        A timeout only stops the waiting; the job keeps running."""
        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFound(job_id)
            future = self._futures.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeout:
                logger.debug("Stopped waiting for job %d after %ss", job_id, timeout)
        return self.get_job(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _update(self, job_id: int, **changes) -> None:
        with self._lock:
            self._jobs[job_id] = replace(self._jobs[job_id], **changes)

    def _finish(self, job_id: int, status: JobStatus, error: Optional[str] = None) -> None:
        # Status and flag change together so a finished job never reports Busy.
        with self._lock:
            self._jobs[job_id] = replace(
                self._jobs[job_id], status=status, error=error, completed_at=self._clock()
            )
            self._running = False

    def _close_session(self, job_id: int, session: Optional[ScrapeSession]) -> None:
        if session is None:
            return
        try:
            session.close()
        except Exception:  # noqa: BLE001
            logger.warning("Closing session for job %d failed", job_id, exc_info=True)

    def _run_job(self, job_id: int, affiliate_tag: Optional[str]) -> None:
        job = self.get_job(job_id)
        total = len(job.urls)
        session: Optional[ScrapeSession] = None
        product_count = 0
        failures: List[str] = []
        first_batch = True
        try:
            try:
                session = self._session_factory(affiliate_tag=affiliate_tag)
                for index, url in enumerate(job.urls, start=1):
                    logger.info("[job %d] Scraping %d/%d: %s", job_id, index, total, url)
                    result = session.run(url)
                    if result.success and result.records:
                        self._sink.write_records(
                            result.records,
                            job.target,
                            overwrite=self._overwrite and first_batch,
                        )
                        first_batch = False
                        product_count += len(result.records)
                    elif not result.success:
                        failures.append(f"{url}: {result.error_type}: {result.error}")
                    self._update(
                        job_id,
                        progress=f"{index}/{total}",
                        product_count=product_count,
                        failures=tuple(failures),
                    )
            except Exception as exc:  # noqa: BLE001
                logger.exception("Job %d failed", job_id)
                self._close_session(job_id, session)
                self._finish(job_id, JobStatus.FAILED, error=str(exc))
            else:
                self._close_session(job_id, session)
                self._finish(job_id, JobStatus.COMPLETED)
                logger.info("Job %d completed: %d products, %d failed URLs", job_id, product_count, len(failures))
        finally:
            with self._lock:
                # Only reached unfinished if closing or finishing itself raised.
                if self._jobs[job_id].status is JobStatus.RUNNING:
                    self._jobs[job_id] = replace(
                        self._jobs[job_id], status=JobStatus.FAILED, completed_at=self._clock()
                    )
                    self._running = False
