"""Dual-queue job scheduler around a single browser slot.

Full audits and quick scans arrive independently but share one expensive
resource: the headless browser. Each kind has its own FIFO queue; both
queues share one ``BrowserLock``, so at most one job runs at any time.

Dispatch rules:

- enqueueing a job tries to dispatch from its own queue first, then from the
  other one;
- when a job finishes, the lock is released unconditionally and the *other*
  queue is offered the slot first, so neither queue can starve the other;
- a queue's head is only removed once the lock has been taken for it.

Full audits are fire-and-forget (their outcome is reported by the pipeline's
completion signal); quick scans hand an ``asyncio.Future`` back to the caller
that resolves with the pipeline result or the exception it raised.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .errors import SchedulerClosedError
from .logging import log_extra
from .models import Job, JobKind, QuickScanResult

ProcessFn = Callable[[Job], Awaitable[Any]]


class BrowserLock:
    """Non-blocking mutual exclusion for the browser slot."""

    def __init__(self) -> None:
        self._holder: str | None = None

    @property
    def locked(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> str | None:
        return self._holder

    def try_acquire(self, holder: str) -> bool:
        """Take the lock if it is free. Returns False without waiting otherwise."""
        if self._holder is not None:
            return False
        self._holder = holder
        return True

    def release(self) -> None:
        self._holder = None


@dataclass
class QueueEntry:
    """A queued job plus, for awaited jobs, the future its caller waits on."""

    job: Job
    is_background: bool
    future: "asyncio.Future[Any] | None" = None
    enqueued_at: float = field(default_factory=time.monotonic)

    @property
    def abandoned(self) -> bool:
        """An awaited entry whose caller already gave up."""
        return self.future is not None and self.future.done()


class JobQueue:
    """FIFO of pending jobs of one kind, processed by ``process``."""

    def __init__(
        self,
        name: str,
        process: ProcessFn,
        scheduler: "JobScheduler",
        ceiling: float | None = None,
    ) -> None:
        self.name = name
        self.process = process
        self.ceiling = ceiling
        self._scheduler = scheduler
        self._entries: deque[QueueEntry] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(self._entries)

    def add_background(self, job: Job) -> None:
        """Queue a job nobody waits for and try to start it."""
        self._entries.append(QueueEntry(job=job, is_background=True))
        log_extra("Job queued", queue=self.name, email=job.email, pending=len(self))
        self._scheduler.try_dispatch(self)

    def add_awaited(self, job: Job) -> "asyncio.Future[Any]":
        """Queue a job and return the future that settles when it has run."""
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._entries.append(QueueEntry(job=job, is_background=False, future=future))
        log_extra("Job queued", queue=self.name, email=job.email, pending=len(self))
        self._scheduler.try_dispatch(self)
        return future

    def peek(self) -> QueueEntry | None:
        """Head of the queue after dropping abandoned entries."""
        while self._entries and self._entries[0].abandoned:
            dropped = self._entries.popleft()
            log_extra("Dropped abandoned job", queue=self.name, email=dropped.job.email)
        return self._entries[0] if self._entries else None

    def pop(self) -> QueueEntry:
        return self._entries.popleft()

    def drain(self) -> list[QueueEntry]:
        entries = list(self._entries)
        self._entries.clear()
        return entries


class JobScheduler:
    """Owns both queues and the browser lock.

    Usage:
        scheduler = JobScheduler(pipeline.run_full_audit, pipeline.run_quick_scan)
        scheduler.submit_full_audit("client@example.com", "https://example.com")
        result = await scheduler.submit_quick_scan("client@example.com", "example.com")
    """

    def __init__(
        self,
        full_process: ProcessFn,
        quick_process: ProcessFn,
        full_ceiling: float | None = None,
        quick_ceiling: float | None = None,
    ) -> None:
        self.lock = BrowserLock()
        self.full_queue = JobQueue("FullAuditQueue", full_process, self, full_ceiling)
        self.quick_queue = JobQueue("QuickScanQueue", quick_process, self, quick_ceiling)
        self._tasks: set[asyncio.Task[None]] = set()
        self._running: tuple[JobQueue, QueueEntry] | None = None
        self._closed = False

    def queue_for(self, kind: JobKind) -> JobQueue:
        return self.full_queue if kind == JobKind.FULL else self.quick_queue

    def sibling(self, queue: JobQueue) -> JobQueue:
        return self.quick_queue if queue is self.full_queue else self.full_queue

    # -- submission ---------------------------------------------------------

    def enqueue_background(self, job: Job) -> None:
        if self._closed:
            raise SchedulerClosedError("Scheduler is shut down")
        self.queue_for(job.kind).add_background(job)

    def enqueue_awaited(self, job: Job) -> "asyncio.Future[Any]":
        if self._closed:
            raise SchedulerClosedError("Scheduler is shut down")
        return self.queue_for(job.kind).add_awaited(job)

    def submit_full_audit(self, email: str, url: str) -> None:
        """Queue a full audit and return immediately."""
        self.enqueue_background(Job(email=email, url=url, kind=JobKind.FULL))

    async def submit_quick_scan(self, email: str, url: str) -> QuickScanResult:
        """Queue a quick scan and wait for its result.

        Raises:
            Whatever the quick-scan pipeline raised, or SchedulerClosedError.
        """
        result: QuickScanResult = await self.enqueue_awaited(
            Job(email=email, url=url, kind=JobKind.QUICK)
        )
        return result

    # -- dispatch -----------------------------------------------------------

    def try_dispatch(self, preferred: JobQueue) -> bool:
        """Start the next job if the browser is free, ``preferred`` queue first."""
        if self._closed:
            return False
        return self._dispatch_from(preferred) or self._dispatch_from(self.sibling(preferred))

    def _dispatch_from(self, queue: JobQueue) -> bool:
        entry = queue.peek()
        if entry is None:
            return False
        if not self.lock.try_acquire(f"{queue.name}:{entry.job.email}"):
            return False

        queue.pop()
        self._running = (queue, entry)
        log_extra(
            "Job picked up, browser locked",
            queue=queue.name,
            email=entry.job.email,
            url=entry.job.url,
            waited_s=round(time.monotonic() - entry.enqueued_at, 2),
        )
        task = asyncio.create_task(self._run(queue, entry), name=f"{queue.name}:{entry.job.email}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, queue: JobQueue, entry: QueueEntry) -> None:
        job = entry.job
        future = entry.future
        try:
            result = await asyncio.wait_for(queue.process(job), timeout=queue.ceiling)
        except asyncio.CancelledError:
            if future is not None and not future.done():
                future.cancel()
            raise
        except TimeoutError as e:
            log_extra(
                "Job exceeded its time ceiling",
                logging.ERROR,
                queue=queue.name,
                email=job.email,
                ceiling_s=queue.ceiling,
            )
            if future is not None and not future.done():
                future.set_exception(e)
        except Exception as e:
            log_extra(
                "Job runner error",
                logging.ERROR,
                queue=queue.name,
                email=job.email,
                error=str(e),
                error_type=type(e).__name__,
            )
            if future is not None and not future.done():
                future.set_exception(e)
        else:
            if future is not None and not future.done():
                future.set_result(result)
        finally:
            self._running = None
            self.lock.release()
            log_extra("Job finished, browser released", queue=queue.name, email=job.email)
            self.try_dispatch(self.sibling(queue))

    # -- introspection and lifecycle ----------------------------------------

    def status(self) -> dict[str, Any]:
        """Snapshot of queue lengths, lock holder and the running job."""
        running = None
        if self._running is not None:
            queue, entry = self._running
            running = {
                "queue": queue.name,
                "email": entry.job.email,
                "url": entry.job.url,
                "kind": entry.job.kind.value,
            }
        return {
            "closed": self._closed,
            "lock_held": self.lock.locked,
            "lock_holder": self.lock.holder,
            "running": running,
            "queues": {
                self.full_queue.name: len(self.full_queue),
                self.quick_queue.name: len(self.quick_queue),
            },
        }

    async def join(self) -> None:
        """Wait until no job is running or queued."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop dispatching, fail pending awaited jobs and cancel the running one."""
        self._closed = True
        for queue in (self.full_queue, self.quick_queue):
            for entry in queue.drain():
                if entry.future is not None and not entry.future.done():
                    entry.future.set_exception(SchedulerClosedError("Scheduler is shut down"))
                log_extra("Pending job dropped at shutdown", queue=queue.name, email=entry.job.email)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log_extra("Scheduler stopped")
