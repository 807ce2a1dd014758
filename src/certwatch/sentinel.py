#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Holder for the most recent valid certificate pair of a watcher."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from types import TracebackType

from provide.foundation.logger import get_logger

from certwatch.channel import OutcomeChannel
from certwatch.errors import CertWatchError
from certwatch.loader import CertificatePair
from certwatch.watcher import CertificateWatcher

log = get_logger(__name__)

ErrorCallback = Callable[[CertWatchError], None]


class Sentinel:
    """Drains a ``CertificateWatcher`` and keeps the last good certificate pair.

    A failed reload never replaces the pair already held; the error is passed
    to ``on_error`` (if given) and logged.
    """

    def __init__(self, watcher: CertificateWatcher, on_error: ErrorCallback | None = None) -> None:
        self.watcher = watcher
        self.on_error = on_error
        self._current: CertificatePair | None = None
        self._updated = asyncio.Event()
        self._readers: list[asyncio.Task[None]] = []

    @property
    def current(self) -> CertificatePair | None:
        return self._current

    def start(self) -> None:
        """Spawn the channel readers. Calling it again while running is a no-op."""
        if self._readers:
            return
        certificates, errors = self.watcher.watch()
        self._readers = [
            asyncio.create_task(self._read_certificates(certificates), name="certwatch-sentinel:certificates"),
            asyncio.create_task(self._read_errors(errors), name="certwatch-sentinel:errors"),
        ]

    async def _read_certificates(self, certificates: OutcomeChannel[CertificatePair]) -> None:
        async for pair in certificates:
            self._current = pair
            self._updated.set()
            log.info(
                "Serving certificate updated",
                subject=pair.subject,
                fingerprint=pair.fingerprint,
                not_valid_after=pair.not_valid_after.isoformat(),
            )

    async def _read_errors(self, errors: OutcomeChannel[CertWatchError]) -> None:
        async for error in errors:
            log.warning("Certificate reload failed, keeping current pair", error=str(error))
            if self.on_error is not None:
                try:
                    self.on_error(error)
                except Exception as e:
                    log.error("Error callback failed", error=str(e))

    def get_certificate(self) -> CertificatePair:
        """Return the latest valid pair.

        Raises:
            LookupError: If no valid pair has been loaded yet
        """
        if self._current is None:
            raise LookupError("no valid certificate pair loaded yet")
        return self._current

    async def wait_for_certificate(self, timeout: float | None = None) -> CertificatePair:
        """Wait until a valid pair is available and return it."""
        await asyncio.wait_for(self._updated.wait(), timeout)
        return self.get_certificate()

    async def stop(self) -> None:
        """Close the watcher and wait for the readers to finish."""
        await self.watcher.close()
        if self._readers:
            await asyncio.gather(*self._readers)

    async def __aenter__(self) -> Sentinel:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()


# 🔼⚙️🔚
