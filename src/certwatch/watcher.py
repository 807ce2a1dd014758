#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Certificate watcher: one background task per watched certificate/key pair.

Usage:
    watcher = CertificateWatcher.create("/etc/tls/server.crt", "/etc/tls/server.key")
    certificates, errors = watcher.watch()

    async for pair in certificates:
        install(pair)

    await watcher.close()

The watch loop runs as a single ``asyncio.Task``. It loads the pair once on
start, then again after relevant filesystem events, and routes each result
to exactly one of the two outbound channels. Changes that arrive while a
reload is already pending share that reload. ``close`` cancels the loop,
which abandons any send still waiting on a full channel, then releases the
event source and closes both channels before returning."""

from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum, auto
import os
from types import TracebackType

from provide.foundation.logger import get_logger

from certwatch.channel import OutcomeChannel
from certwatch.config import WatcherConfig
from certwatch.errors import CertWatchError, WatcherRuntimeError
from certwatch.loader import CertificatePair, LoadOutcome, WatchTarget, attempt_load
from certwatch.source import EventSource, PairChangedEvent, SourceSignal, WatchdogEventSource

log = get_logger(__name__)


class WatchState(Enum):
    """Lifecycle of a watch loop."""

    STARTING = auto()
    RUNNING = auto()
    DRAINING = auto()
    STOPPED = auto()


class CertificateWatcher:
    """Watches a certificate and key and publishes every load outcome.

    Instances are built with ``create``, which starts the watch loop before
    returning. The certificate and error channels exist for the whole life of
    the watcher and are closed together by ``close``.
    """

    def __init__(
        self,
        target: WatchTarget,
        *,
        config: WatcherConfig | None = None,
        source: EventSource | None = None,
    ) -> None:
        self.target = target
        self.config = config or WatcherConfig()
        self._source: EventSource = source or WatchdogEventSource(target, self.config)
        self._loop = asyncio.get_running_loop()
        self._signals: deque[SourceSignal] = deque()
        self._signal_ready = asyncio.Event()
        self._pending_errors = 0
        self._certificates: OutcomeChannel[CertificatePair] = OutcomeChannel(
            "certificates", self.config.buffer_size
        )
        self._errors: OutcomeChannel[CertWatchError] = OutcomeChannel("errors", self.config.buffer_size)
        self._state = WatchState.STARTING
        self._closed = False
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._log = log.bind(cert_path=str(target.cert_path), key_path=str(target.key_path))

    @classmethod
    def create(
        cls,
        cert_path: str | os.PathLike[str],
        key_path: str | os.PathLike[str],
        *,
        config: WatcherConfig | None = None,
        source: EventSource | None = None,
    ) -> CertificateWatcher:
        """Start watching *cert_path* and *key_path*.

        Must be called from a running event loop. The first load happens in the
        background; its outcome is the first item on one of the channels.

        Args:
            cert_path: Path to the PEM certificate (chain), which need not exist yet
            key_path: Path to the PEM private key, which need not exist yet
            config: Optional tunables; defaults to ``WatcherConfig()``
            source: Optional event source; defaults to a watchdog directory watch

        Raises:
            ValueError: If either path is empty
            WatcherSetupError: If the directory watch cannot be established
            RuntimeError: If no event loop is running
        """
        watcher = cls(WatchTarget(cert_path, key_path), config=config, source=source)
        watcher._start()
        return watcher

    def _start(self) -> None:
        self._source.start(self._on_signal)
        self._task = self._loop.create_task(self._run(), name=f"certwatch:{self.target.cert_path.name}")
        self._task.add_done_callback(self._on_task_done)
        self._log.info("Certificate watch started")

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def watch(self) -> tuple[OutcomeChannel[CertificatePair], OutcomeChannel[CertWatchError]]:
        """Return the ``(certificates, errors)`` channels created at construction."""
        return self._certificates, self._errors

    def _on_signal(self, signal: SourceSignal) -> None:
        # Called from observer threads.
        try:
            self._loop.call_soon_threadsafe(self._enqueue, signal)
        except RuntimeError:
            # The event loop is closed; nothing is left to notify.
            self._log.debug("Dropped signal after event loop closed", signal=repr(signal))

    def _enqueue(self, signal: SourceSignal) -> None:
        if self._state in (WatchState.DRAINING, WatchState.STOPPED):
            return
        if isinstance(signal, WatcherRuntimeError):
            if self._pending_errors >= self.config.event_queue_size:
                self._log.error("Runtime error backlog full, dropping error", error=str(signal))
                return
            self._pending_errors += 1
        elif self._signals and isinstance(self._signals[-1], PairChangedEvent):
            # The reload already queued will read the files as they are now.
            self._log.debug("Reload already pending", change_type=signal.change_type)
            return
        self._signals.append(signal)
        self._signal_ready.set()

    async def _next_signal(self) -> SourceSignal:
        while not self._signals:
            self._signal_ready.clear()
            await self._signal_ready.wait()
        signal = self._signals.popleft()
        if isinstance(signal, WatcherRuntimeError):
            self._pending_errors -= 1
        return signal

    async def _route(self, outcome: LoadOutcome) -> None:
        if outcome.ok:
            await self._certificates.put(outcome.pair)
        else:
            await self._errors.put(outcome.error)

    async def _load(self) -> None:
        # File reads and parsing stay off the event loop.
        await self._route(await asyncio.to_thread(attempt_load, self.target))

    async def _run(self) -> None:
        try:
            await self._load()
            self._state = WatchState.RUNNING
            self._log.debug("Watch loop running")

            while True:
                signal = await self._next_signal()
                if isinstance(signal, WatcherRuntimeError):
                    self._log.error("Event source failure", error=str(signal))
                    await self._errors.put(signal)
                    continue
                self._log.debug(
                    "Reloading certificate pair",
                    change_type=signal.change_type,
                    src_path=str(signal.src_path),
                )
                await self._load()
        finally:
            await self._drain()

    async def _drain(self) -> None:
        """Stop the source and close both channels, once.

        Every caller waits for the same shutdown; cancelling one caller does
        not interrupt it.
        """
        if self._drain_task is None:
            self._state = WatchState.DRAINING
            self._drain_task = self._loop.create_task(self._shutdown())
        await asyncio.shield(self._drain_task)

    async def _shutdown(self) -> None:
        try:
            # Joining observer threads blocks for up to stop_timeout.
            await asyncio.to_thread(self._source.stop)
        finally:
            self._signals.clear()
            self._certificates.close()
            self._errors.close()
            self._state = WatchState.STOPPED
            self._log.debug("Watch loop stopped")

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("Watch loop failed", error=str(exc), error_type=type(exc).__name__)

    async def close(self) -> None:
        """Stop the watch and wait for the loop to exit.

        The first call performs the shutdown. Later and concurrent calls wait
        for that shutdown to finish and return ``None`` without repeating it.
        """
        if self._closed:
            await self._stopped.wait()
            return
        self._closed = True

        try:
            if self._task is not None:
                self._task.cancel()
                # asyncio.wait neither raises the task's CancelledError nor cancels it.
                await asyncio.wait([self._task])
        finally:
            # Covers a task cancelled before it ever ran.
            await self._drain()
            self._stopped.set()
            self._log.info("Certificate watch closed")

    async def __aenter__(self) -> CertificateWatcher:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


# 🔼⚙️🔚
