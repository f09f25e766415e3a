"""
Concurrent probe scheduling for Ingress Certificate Exporter.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from ingress_cert_exporter.logger import get_logger, log_probe_failure
from ingress_cert_exporter.models import HostnameTarget, ProbeOutcome

ProbeFunc = Callable[[HostnameTarget], List[ProbeOutcome]]


class CollectionDeadlineExceeded(Exception):
    """A probe was still running when the collection deadline expired."""


class ScatterGatherScheduler:
    """
    Runs one probe per target and joins them all.

    Probes block on sockets, so each runs on a worker thread; a semaphore
    bounds how many are in flight. Outcomes are accumulated only by the
    awaiting coroutine after each probe task finishes, never by the workers.
    """

    def __init__(
        self,
        probe: ProbeFunc,
        workers: int = 32,
        collection_timeout: Optional[float] = None,
    ):
        self.probe = probe
        self.workers = workers
        self.collection_timeout = collection_timeout
        self.logger = get_logger("scheduler")

        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe")

        self.logger.info(
            f"Probe scheduler initialized - Workers: {workers}, "
            f"Collection timeout: {collection_timeout or 'none'}"
        )

    def collect(self, targets: Sequence[HostnameTarget]) -> List[ProbeOutcome]:
        """
        Probe every target from synchronous code.

        Must not be called from a thread that is already running an event loop;
        use ``gather`` there.
        """
        return asyncio.run(self.gather(targets))

    async def gather(self, targets: Sequence[HostnameTarget]) -> List[ProbeOutcome]:
        """
        Probe every target concurrently and wait for all of them.

        Args:
            targets: Targets of this collection pass

        Returns:
            Outcomes in target order; every target contributes either its
            certificates or one failure outcome
        """
        if not targets:
            return []

        semaphore = asyncio.Semaphore(self.workers)
        tasks = [asyncio.create_task(self._probe_target(target, semaphore)) for target in targets]

        _, pending = await asyncio.wait(tasks, timeout=self.collection_timeout)

        if pending:
            self.logger.warning(
                f"Collection deadline of {self.collection_timeout}s exceeded, "
                f"{len(pending)} of {len(tasks)} probes unfinished"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: List[ProbeOutcome] = []
        for target, task in zip(targets, tasks):
            if task.cancelled():
                self._record_failure(
                    outcomes,
                    target,
                    CollectionDeadlineExceeded("collection deadline exceeded"),
                    "deadline_exceeded",
                )
                continue

            error = task.exception()
            if error is not None:
                self._record_failure(outcomes, target, error, type(error).__name__)
                continue

            outcomes.extend(task.result())

        return outcomes

    async def _probe_target(
        self, target: HostnameTarget, semaphore: asyncio.Semaphore
    ) -> List[ProbeOutcome]:
        async with semaphore:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, self.probe, target)

    def _record_failure(
        self,
        outcomes: List[ProbeOutcome],
        target: HostnameTarget,
        error: BaseException,
        error_type: str,
    ) -> None:
        log_probe_failure(
            self.logger, target.hostname, target.ingress_name, target.namespace, error, error_type
        )
        outcomes.append(ProbeOutcome.failed(target))

    def close(self) -> None:
        """Release worker threads; running probes finish on their own timeout."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.logger.info("Probe scheduler stopped")
