"""
Renewal coordinator.

A single actor task owns the scheduler state (phase and pending force flag).
Periodic ticks and forced renewal requests are delivered to it as messages,
so at most one certbot run is ever in flight. A forced renewal that arrives
while a run is in progress is not merged into that run: the caller waits for
a fresh forced run that starts once the current one has finished.
"""

import asyncio
import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .backup import backup, restore_if_needed
from .certification import ensure_cert
from .config import CertificationConfig
from .keys import KeyMaterial, https_keys
from .types import (
    BackupError,
    CertificationMode,
    CertkeeperError,
    Error,
    Failure,
    NewCertificate,
    NoChange,
    RenewalOutcome,
    Result,
    SchedulerPhase,
    Success,
)

logger = logging.getLogger(__name__)

NewCertCallback = Callable[[], Awaitable[None] | None]


@dataclass
class _Tick:
    waiter: asyncio.Future = field(repr=False)


@dataclass
class _ForceRenew:
    waiter: asyncio.Future = field(repr=False)


@dataclass
class _RunFinished:
    outcome: RenewalOutcome


class _Stop:
    pass


def _resolve(waiter: asyncio.Future, value: RenewalOutcome | None) -> None:
    # The caller may have given up waiting
    if not waiter.done():
        waiter.set_result(value)


class RenewalCoordinator:
    """Keeps the certificate for one domain current.

    Usage::

        coordinator = RenewalCoordinator(config, on_new_cert=reload_listener)
        await coordinator.start()
        ...
        await coordinator.force_renew()
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        config: CertificationConfig,
        on_new_cert: NewCertCallback | None = None,
    ):
        """Initialize the coordinator.

        Args:
            config: Certification settings
            on_new_cert: Called without arguments after each new certificate
                has been backed up. May be a coroutine function.
        """
        self.config = config
        self.on_new_cert = on_new_cert

        self._phase = SchedulerPhase.IDLE
        self._pending_force = False
        self._last_outcome: RenewalOutcome | None = None

        # Set after a restore until a run succeeds
        self._restored = False

        self._mailbox: asyncio.Queue | None = None
        self._actor_task: asyncio.Task | None = None
        self._timer_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        # Waiters of the run in flight, and of the next forced run
        self._run_waiters: list[asyncio.Future] = []
        self._force_waiters: list[asyncio.Future] = []

        self._running = False
        self._stopping = False

    @property
    def phase(self) -> SchedulerPhase:
        return self._phase

    @property
    def pending_force(self) -> bool:
        return self._pending_force

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_outcome(self) -> RenewalOutcome | None:
        return self._last_outcome

    @property
    def restore_pending(self) -> bool:
        """True after a restore from backup until a run completes without
        failure."""
        return self._restored

    def key_material(self) -> KeyMaterial | None:
        """Key material paths for the TLS listener, if available."""
        return https_keys(self.config)

    async def start(self) -> Result:
        """Restore the store if needed and start the actor (and timer in auto
        mode)."""
        if self._running:
            return Success(message="Renewal coordinator already running")

        loop = asyncio.get_running_loop()
        try:
            self._restored = await loop.run_in_executor(
                None, restore_if_needed, self.config
            )
        except BackupError as e:
            logger.error(f"Failed to restore certificate store: {e}")
            return Error(error=str(e), exception=e)

        if self._restored:
            logger.info(
                "Certificate store restored, next check will be forced "
                f"for {self.config.domain}"
            )

        self._loop = loop
        self._mailbox = asyncio.Queue()
        self._stopping = False
        self._running = True
        self._actor_task = asyncio.create_task(
            self._actor_loop(), name=f"certkeeper-actor-{self.config.domain}"
        )

        if self.config.mode is CertificationMode.AUTO:
            self._timer_task = asyncio.create_task(
                self._timer_loop(), name=f"certkeeper-timer-{self.config.domain}"
            )
            logger.info(
                f"Renewal coordinator started for {self.config.domain} "
                f"(interval={self.config.renewal_interval})"
            )
        else:
            logger.info(
                f"Renewal coordinator started for {self.config.domain} in manual mode"
            )

        return Success(message=f"Renewal coordinator started for {self.config.domain}")

    async def stop(self) -> None:
        """Stop the timer, let any in-flight run finish, then stop the actor."""
        if not self._running:
            return

        self._running = False

        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        assert self._mailbox is not None
        self._mailbox.put_nowait(_Stop())
        if self._actor_task is not None:
            await self._actor_task
            self._actor_task = None

        logger.info(f"Renewal coordinator stopped for {self.config.domain}")

    async def tick(self) -> RenewalOutcome | None:
        """Deliver one periodic tick and wait for the resulting run.

        Returns:
            The run's outcome, or None if the tick was suppressed because a
            run was already in progress
        """
        return await self._send(_Tick)

    async def force_renew(self) -> RenewalOutcome:
        """Force a renewal and wait until it has completed.

        If a run is already in progress, a new forced run is started after it
        and this call returns only once that forced run has finished.

        Raises:
            CertkeeperError: If the coordinator is not running, or is stopped
                before the forced run starts
        """
        outcome = await self._send(_ForceRenew)
        assert outcome is not None
        return outcome

    def force_renew_blocking(self, timeout: float | None = None) -> RenewalOutcome:
        """Thread-safe variant of force_renew for callers outside the loop."""
        if self._loop is None or not self._running:
            raise CertkeeperError("Renewal coordinator is not running")
        future = asyncio.run_coroutine_threadsafe(self.force_renew(), self._loop)
        return future.result(timeout)

    async def _send(
        self, message_type: type[_Tick] | type[_ForceRenew]
    ) -> RenewalOutcome | None:
        if not self._running or self._mailbox is None:
            raise CertkeeperError("Renewal coordinator is not running")
        waiter = asyncio.get_running_loop().create_future()
        self._mailbox.put_nowait(message_type(waiter))
        result: RenewalOutcome | None = await waiter
        return result

    async def _timer_loop(self) -> None:
        interval = self.config.renewal_interval.total_seconds()
        while True:
            await self.tick()
            await asyncio.sleep(interval)

    async def _actor_loop(self) -> None:
        assert self._mailbox is not None
        while True:
            message = await self._mailbox.get()

            if isinstance(message, _Stop):
                self._stopping = True
            elif isinstance(message, _Tick):
                self._handle_tick(message)
            elif isinstance(message, _ForceRenew):
                self._handle_force(message)
            elif isinstance(message, _RunFinished):
                self._finish_run(message.outcome)

            if self._stopping and self._run_task is None:
                break

        self._drain_after_stop()

    def _handle_tick(self, message: _Tick) -> None:
        if self._stopping or self._phase is not SchedulerPhase.IDLE:
            logger.debug(f"Periodic check suppressed (phase={self._phase.value})")
            _resolve(message.waiter, None)
            return
        self._start_run(force=False, waiters=[message.waiter])

    def _handle_force(self, message: _ForceRenew) -> None:
        if self._phase is SchedulerPhase.IDLE and not self._stopping:
            self._start_run(force=True, waiters=[message.waiter])
            return
        logger.info("Forced renewal requested while a run is in progress")
        self._pending_force = True
        self._force_waiters.append(message.waiter)

    def _start_run(
        self,
        force: bool,
        waiters: list[asyncio.Future],
        phase: SchedulerPhase = SchedulerPhase.RUNNING,
    ) -> None:
        assume_changed = self._restored
        self._phase = phase
        self._run_waiters = waiters
        self._run_task = asyncio.create_task(
            self._run(force or assume_changed, assume_changed)
        )

    def _finish_run(self, outcome: RenewalOutcome) -> None:
        self._run_task = None
        self._last_outcome = outcome
        if not isinstance(outcome, Failure):
            self._restored = False

        for waiter in self._run_waiters:
            _resolve(waiter, outcome)
        self._run_waiters = []

        if self._pending_force and not self._stopping:
            self._pending_force = False
            waiters, self._force_waiters = self._force_waiters, []
            self._start_run(
                force=True, waiters=waiters, phase=SchedulerPhase.PAUSED_FOR_FORCE
            )
        else:
            self._phase = SchedulerPhase.IDLE

    def _drain_after_stop(self) -> None:
        assert self._mailbox is not None
        while not self._mailbox.empty():
            message = self._mailbox.get_nowait()
            if isinstance(message, _Tick):
                _resolve(message.waiter, None)
            elif isinstance(message, _ForceRenew):
                self._force_waiters.append(message.waiter)

        for waiter in self._force_waiters:
            if not waiter.done():
                waiter.set_exception(CertkeeperError("Renewal coordinator stopped"))
        self._force_waiters = []
        self._pending_force = False
        self._phase = SchedulerPhase.IDLE

    async def _run(self, force: bool, assume_changed: bool) -> None:
        assert self._mailbox is not None
        outcome: RenewalOutcome = Failure("certificate check did not complete")
        try:
            outcome = await self._check(force, assume_changed)
        finally:
            self._mailbox.put_nowait(_RunFinished(outcome))

    async def _check(self, force: bool, assume_changed: bool) -> RenewalOutcome:
        loop = asyncio.get_running_loop()
        try:
            outcome = await loop.run_in_executor(
                None,
                functools.partial(
                    ensure_cert, self.config, force, assume_changed=assume_changed
                ),
            )
        except (OSError, CertkeeperError) as e:
            logger.error(f"Certificate check for {self.config.domain} failed: {e}")
            return Failure(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while checking certificate: {e}")
            return Failure(str(e))

        if isinstance(outcome, NewCertificate):
            logger.info(f"New certificate for {self.config.domain}")
            await self._handle_new_certificate()
        elif isinstance(outcome, NoChange):
            logger.info(f"Certificate for {self.config.domain} unchanged")
        else:
            logger.error(
                f"Certificate renewal for {self.config.domain} failed:\n{outcome.log}"
            )
        return outcome

    async def _handle_new_certificate(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, backup, self.config)
        except BackupError as e:
            logger.error(f"Failed to back up certificate store: {e}")

        if self.on_new_cert is None:
            return
        try:
            result = self.on_new_cert()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"New certificate callback failed: {e}")
