from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from media_enrich.core.errors import UnknownJobError

from .types import JOBS_TO_QUEUE, Job, JobName, QueueName

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[None]]


@dataclass
class JobCounts:
    active: int = 0
    waiting: int = 0
    completed: int = 0
    failed: int = 0
    paused: bool = False


@dataclass
class _QueueState:
    """Pause gate and in-flight accounting shared by all job names of a queue."""

    name: QueueName
    running: asyncio.Event = field(default_factory=asyncio.Event)
    changed: asyncio.Condition = field(default_factory=asyncio.Condition)
    active: int = 0
    completed: int = 0
    failed: int = 0
    pause_holders: int = 0

    def __post_init__(self) -> None:
        self.running.set()


@dataclass
class _Binding:
    name: JobName
    handler: JobHandler
    concurrency: int
    pending: asyncio.Queue = field(default_factory=asyncio.Queue)
    workers: list[asyncio.Task] = field(default_factory=list)


class JobQueue:
    """In-process job queue.

    Every job name gets its own FIFO consumed by ``concurrency`` worker tasks.
    Job names are grouped into queues; pausing a queue stops its workers from
    starting new jobs and waits for the ones in flight to finish.
    """

    def __init__(self) -> None:
        self._bindings: dict[JobName, _Binding] = {}
        self._queues: dict[QueueName, _QueueState] = {}
        self._outstanding = 0
        self._idle: Optional[asyncio.Event] = None
        self._started = False

    def register(self, name: JobName, handler: JobHandler, *, concurrency: int = 1) -> None:
        if self._started:
            raise RuntimeError("Handlers must be registered before the queue starts")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._bindings[name] = _Binding(name=name, handler=handler, concurrency=concurrency)
        self._state(JOBS_TO_QUEUE[name])

    def _state(self, name: QueueName) -> _QueueState:
        state = self._queues.get(name)
        if state is None:
            state = _QueueState(name=name)
            self._queues[name] = state
        return state

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            if self._outstanding == 0:
                self._idle.set()
        return self._idle

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for binding in self._bindings.values():
            for index in range(binding.concurrency):
                task = asyncio.create_task(
                    self._work(binding), name=f"{binding.name.value}-{index}"
                )
                binding.workers.append(task)
        logger.info(
            "Job queue started (%s)",
            ", ".join(f"{b.name.value}={b.concurrency}" for b in self._bindings.values()),
        )

    async def stop(self) -> None:
        tasks = [task for binding in self._bindings.values() for task in binding.workers]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for binding in self._bindings.values():
            binding.workers.clear()
        self._started = False

    async def queue(self, job: Job) -> None:
        binding = self._bindings.get(job.name)
        if binding is None:
            if job.name not in JOBS_TO_QUEUE:
                raise UnknownJobError(f"Unknown job name: {job.name}")
            # Downstream consumers (storage templates, search) live outside this process.
            logger.debug("No handler registered for %s; dropping job", job.name.value)
            return
        self._outstanding += 1
        self._idle_event().clear()
        binding.pending.put_nowait(job)

    async def pause(self, name: QueueName) -> None:
        """Take a pause hold on ``name`` and wait for its in-flight jobs to finish.

        Holds are counted: the queue runs again once every holder has resumed.
        """
        state = self._state(name)
        state.pause_holders += 1
        state.running.clear()
        async with state.changed:
            await state.changed.wait_for(lambda: state.active == 0)
        logger.info("Paused queue %s (holders=%d)", name.value, state.pause_holders)

    async def resume(self, name: QueueName) -> None:
        state = self._state(name)
        if state.pause_holders == 0:
            logger.warning("Queue %s is not paused", name.value)
            return
        state.pause_holders -= 1
        if state.pause_holders:
            logger.info("Queue %s stays paused (holders=%d)", name.value, state.pause_holders)
            return
        state.running.set()
        logger.info("Resumed queue %s", name.value)

    async def wait_until_idle(self) -> None:
        """Block until every queued job, including chained ones, has been handled."""
        await self._idle_event().wait()

    def get_counts(self, name: QueueName) -> JobCounts:
        state = self._state(name)
        waiting = sum(
            binding.pending.qsize()
            for binding in self._bindings.values()
            if JOBS_TO_QUEUE[binding.name] == name
        )
        return JobCounts(
            active=state.active,
            waiting=waiting,
            completed=state.completed,
            failed=state.failed,
            paused=not state.running.is_set(),
        )

    async def _work(self, binding: _Binding) -> None:
        state = self._state(JOBS_TO_QUEUE[binding.name])
        while True:
            job = await binding.pending.get()
            while not state.running.is_set():
                await state.running.wait()
            # No await between the gate check and the increment: pause() relies on it.
            state.active += 1
            try:
                await binding.handler(job)
                state.completed += 1
            except Exception:
                state.failed += 1
                logger.exception("Job %s failed", job.name.value)
            finally:
                async with state.changed:
                    state.active -= 1
                    state.changed.notify_all()
                binding.pending.task_done()
                self._outstanding -= 1
                if self._outstanding == 0:
                    self._idle_event().set()
