"""
LAN dispatcher: pulls jobs from the hosted queue and drives the printer.

One cycle is: flush any acknowledgements left over from a failed cycle,
long-poll for pending jobs, encode and send them oldest-first, then
acknowledge everything that reached the device in a single call.

Ordering is print-then-ack. A crash between the two produces a duplicate
ticket on redelivery, never a lost one. A job whose device write fails is
left out of the acknowledged batch and comes back on the next fetch; the
rest of the batch is still sent. All loop state lives on the Dispatcher
instance.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from print_relay.core.config import DispatcherSettings
from print_relay.core.errors import InvalidRequest, PrintRelayError, TransportFailure, Unauthorized
from print_relay.core.jobs import PrintJob

from .client import QueueClient
from .tickets import TicketOptions, encode_job
from .transports import Transport, build_transport

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    fetched: int = 0
    printed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    acknowledged: int = 0
    error: Optional[str] = None


class Dispatcher:
    def __init__(
        self,
        client: QueueClient,
        transport: Transport,
        *,
        options: Optional[TicketOptions] = None,
        types: Optional[Sequence[str]] = None,
        send_attempts: int = 3,
        retry_delay: float = 1.0,
        error_delay: float = 2.0,
        probe_interval: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.transport = transport
        self.options = options or TicketOptions()
        self.types = list(types) if types else None
        self.send_attempts = max(1, int(send_attempts))
        self.retry_delay = float(retry_delay)
        self.error_delay = float(error_delay)
        # Seconds between device reachability checks in run_forever; 0 disables
        self.probe_interval = float(probe_interval)
        self._sleep = sleep
        self._clock = clock

        # Printed but not yet acknowledged (ack call failed); retried first next cycle
        self._unacked: List[str] = []
        self.device_ok: Optional[bool] = None
        self.cycles = 0
        self.last_result: Optional[CycleResult] = None

    # ----- sending ---------------------------------------------------------

    def _send(self, job: PrintJob, data: bytes) -> None:
        last: Optional[TransportFailure] = None
        for attempt in range(1, self.send_attempts + 1):
            try:
                self.transport.send(data)
                if attempt > 1:
                    logger.info("Job %s sent on attempt %d/%d", job.id, attempt, self.send_attempts)
                return
            except TransportFailure as e:
                last = e
                logger.warning(
                    "Send of %s job %s failed (attempt %d/%d): %s", job.type, job.id, attempt, self.send_attempts, e
                )
                if attempt < self.send_attempts:
                    self._sleep(self.retry_delay)
        assert last is not None
        raise last

    def process(self, jobs: Sequence[PrintJob], result: Optional[CycleResult] = None) -> CycleResult:
        """
        Encode and send jobs in order. Returns which ids reached the device.
        """
        result = result or CycleResult()
        result.fetched = len(jobs)
        for job in jobs:
            # Unencodable jobs are left pending for an operator; they do not hold up the batch
            try:
                data = encode_job(job, self.options)
            except InvalidRequest as e:
                logger.error("Skipping job %s: cannot encode %s payload: %s", job.id, job.type, e)
                result.skipped.append(job.id)
                continue
            except Exception:
                logger.exception("Skipping job %s: encoder crashed on %s payload", job.id, job.type)
                result.skipped.append(job.id)
                continue
            try:
                self._send(job, data)
            except TransportFailure as e:
                result.failed.append(job.id)
                logger.error(
                    "Job %s not printed on %s (%s); left pending for redelivery",
                    job.id,
                    self.transport.describe(),
                    e,
                )
                continue
            result.printed.append(job.id)
            logger.info(
                "Printed %s job %s via %s", job.type, job.id, self.transport.describe(), extra={"job_id": job.id}
            )
        return result

    # ----- acknowledgements ------------------------------------------------

    def _acknowledge(self, ids: List[str]) -> int:
        try:
            updated = self.client.acknowledge(ids)
        except PrintRelayError as e:
            self._unacked = list(dict.fromkeys(self._unacked + ids))
            logger.error("Acknowledge of %d job(s) failed, will retry next cycle: %s", len(ids), e)
            raise
        done = set(ids)
        self._unacked = [i for i in self._unacked if i not in done]
        return updated

    @property
    def unacknowledged(self) -> List[str]:
        return list(self._unacked)

    # ----- loop ------------------------------------------------------------

    def _backoff(self, result: CycleResult, e: PrintRelayError, what: str) -> CycleResult:
        result.error = f"{what}: {e}"
        if isinstance(e, Unauthorized):
            # A wrong secret does not fix itself; retrying would only spam the queue
            logger.error("Print queue rejected the shared secret during %s; check PRINTRELAY_SECRET", what)
            raise e
        logger.warning("%s failed: %s; retrying in %.1fs", what, e, self.error_delay)
        self._sleep(self.error_delay)
        return result

    def check_device(self) -> bool:
        """
        Probe the transport and log the outcome. Never raises; returns reachability.
        """
        try:
            self.transport.probe()
        except TransportFailure as e:
            logger.warning("Printer %s is not reachable: %s", self.transport.describe(), e)
            self.device_ok = False
            return False
        if self.device_ok is False:
            logger.info("Printer %s is reachable again", self.transport.describe())
        else:
            logger.debug("Printer %s is reachable", self.transport.describe())
        self.device_ok = True
        return True

    def run_once(self) -> CycleResult:
        """
        Run one fetch/print/acknowledge cycle.

        Queue and device errors are logged and absorbed (with an error_delay
        pause where retrying immediately would hot-loop). Unauthorized is
        re-raised: the shared secret is wrong and retrying cannot help.
        """
        self.cycles += 1
        result = CycleResult()
        self.last_result = result

        if self._unacked:
            try:
                result.acknowledged += self._acknowledge(list(self._unacked))
            except PrintRelayError as e:
                return self._backoff(result, e, "acknowledge retry")

        try:
            jobs = self.client.fetch_pending(long_poll=True, types=self.types)
        except PrintRelayError as e:
            return self._backoff(result, e, "fetch")

        if not jobs:
            return result
        logger.info("Fetched %d job(s): %s", len(jobs), ", ".join(j.id for j in jobs))

        self.process(jobs, result)
        if result.printed:
            try:
                result.acknowledged += self._acknowledge(result.printed)
            except PrintRelayError as e:
                return self._backoff(result, e, "acknowledge")
        if result.failed or (result.skipped and not result.printed):
            # Jobs left pending come straight back on the next fetch; pause before it
            self._sleep(self.error_delay)
        return result

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Run cycles until stop_event is set. Returns normally on stop; raises
        Unauthorized when the queue rejects the shared secret.
        """
        stop_event = stop_event or threading.Event()
        logger.info(
            "Dispatcher started: queue=%s transport=%s types=%s",
            self.client.base_url,
            self.transport.describe(),
            ",".join(self.types) if self.types else "all",
        )
        last_probe: Optional[float] = None
        while not stop_event.is_set():
            if self.probe_interval > 0:
                now = self._clock()
                if last_probe is None or now - last_probe >= self.probe_interval:
                    last_probe = now
                    self.check_device()
            try:
                self.run_once()
            except Unauthorized:
                logger.error("Dispatcher stopping after %d cycles: unauthorized", self.cycles)
                raise
            except Exception:
                # Unexpected bug in a cycle; keep the worker alive
                logger.exception("Dispatcher cycle crashed")
                self._sleep(self.error_delay)
        logger.info("Dispatcher stopped after %d cycles", self.cycles)


def build_dispatcher(settings: DispatcherSettings, *, session=None) -> Dispatcher:
    """
    Wire a dispatcher from settings: queue client, the one configured transport, ticket options.
    """
    client = QueueClient(settings.queue_url, settings.secret, timeout=settings.http_timeout, session=session)
    return Dispatcher(
        client,
        build_transport(settings),
        options=TicketOptions.from_settings(settings),
        types=settings.types or None,
        send_attempts=settings.send_attempts,
        retry_delay=settings.retry_delay,
        error_delay=settings.error_delay,
        probe_interval=settings.probe_interval,
    )


__all__ = ["CycleResult", "Dispatcher", "build_dispatcher"]
