#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Filesystem event source for certificate watchers, built on watchdog.

The source watches the directories that contain the certificate and key,
never the files themselves. Certificate rotation usually writes a new file
next to the old one and renames it over the live path; a watch held on the
old inode would go stale, while a directory watch keeps reporting events
for the name without ever being re-registered."""

from __future__ import annotations

from collections.abc import Callable
import os
from pathlib import Path
import threading
from typing import TYPE_CHECKING, Protocol, TypeAlias

from attrs import define
from provide.foundation.logger import get_logger
from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver
from watchdog.utils import platform

from certwatch.config import WatcherConfig
from certwatch.errors import WatcherRuntimeError, WatcherSetupError

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from certwatch.loader import WatchTarget

log = get_logger(__name__)

# Opened and closed-without-write are never relevant: the loader's own
# reads would otherwise trigger another load.
RELEVANT_EVENT_TYPES = frozenset(
    {
        EVENT_TYPE_CREATED,
        EVENT_TYPE_MODIFIED,
        EVENT_TYPE_MOVED,
        EVENT_TYPE_DELETED,
        EVENT_TYPE_CLOSED,
    }
)

# Backends that report closed-after-write: one write is one closed event,
# while created and modified fire before the content is complete.
CLOSE_AWARE_EVENT_TYPES = frozenset({EVENT_TYPE_CLOSED, EVENT_TYPE_MOVED, EVENT_TYPE_DELETED})


@define(frozen=True, slots=True)
class PairChangedEvent:
    """Signal that the certificate or key file may have changed."""

    change_type: str
    src_path: Path
    dest_path: Path | None = None


SourceSignal: TypeAlias = PairChangedEvent | WatcherRuntimeError
SignalSink: TypeAlias = Callable[[SourceSignal], None]


class EventSource(Protocol):
    """Capability a watcher uses to learn about changes to its files.

    ``start`` raises ``WatcherSetupError`` when the watch cannot be
    established. After it returns, *sink* may be called from any thread
    until ``stop`` returns. ``stop`` must be idempotent.
    """

    def start(self, sink: SignalSink) -> None: ...

    def stop(self) -> None: ...


def _decode(path: str | bytes) -> str:
    return os.fsdecode(path) if path else ""


def _emits_close_events(observer: BaseObserver) -> bool:
    """Whether *observer* reports closed-after-write for every completed write."""
    if not platform.is_linux():
        return False
    from watchdog.observers.inotify import InotifyObserver

    return isinstance(observer, InotifyObserver)


class PairEventHandler(FileSystemEventHandler):
    """Translates raw watchdog events into ``SourceSignal`` values."""

    def __init__(
        self,
        target: WatchTarget,
        directories: tuple[Path, ...],
        sink: SignalSink,
        close_events: bool = False,
    ) -> None:
        super().__init__()
        self.target = target
        self.sink = sink
        self.event_types = CLOSE_AWARE_EVENT_TYPES if close_events else RELEVANT_EVENT_TYPES
        self._directories = {os.path.normpath(d) for d in directories}

    def on_any_event(self, event: FileSystemEvent) -> None:
        src_path = _decode(event.src_path)
        dest_path = _decode(getattr(event, "dest_path", ""))

        if event.is_directory:
            if event.event_type in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED) and (
                os.path.normpath(src_path) in self._directories
            ):
                log.error("Watched directory disappeared", path=src_path, event_type=event.event_type)
                self.sink(WatcherRuntimeError(f"watched directory '{src_path}' was {event.event_type}"))
            return

        if event.event_type not in self.event_types:
            return
        if not (self.target.matches(src_path) or self.target.matches(dest_path)):
            return

        log.debug("Certificate file event", event_type=event.event_type, src_path=src_path, dest_path=dest_path)
        self.sink(
            PairChangedEvent(
                change_type=event.event_type,
                src_path=Path(src_path),
                dest_path=Path(dest_path) if dest_path else None,
            )
        )


class WatchdogEventSource:
    """``EventSource`` backed by a watchdog observer over the target's parent directories."""

    def __init__(
        self,
        target: WatchTarget,
        config: WatcherConfig | None = None,
        observer_factory: Callable[[], BaseObserver] | None = None,
    ) -> None:
        self.target = target
        self.config = config or WatcherConfig()
        self._observer_factory = observer_factory or self._default_observer
        self._observer: BaseObserver | None = None
        self._lock = threading.Lock()
        self.close_events = False

    def _default_observer(self) -> BaseObserver:
        if self.config.use_polling:
            return PollingObserver(timeout=self.config.polling_interval)
        return Observer()

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self, sink: SignalSink) -> None:
        directories = self.target.directories
        for directory in directories:
            if not directory.is_dir():
                raise WatcherSetupError(directory, "directory does not exist")

        observer = self._observer_factory()
        self.close_events = _emits_close_events(observer)
        handler = PairEventHandler(self.target, directories, sink, close_events=self.close_events)
        try:
            for directory in directories:
                observer.schedule(handler, str(directory), recursive=False)
            observer.start()
        except OSError as e:
            # Emitters that did start must not outlive a failed setup.
            observer.stop()
            raise WatcherSetupError(directories[0], e.strerror or str(e)) from e

        with self._lock:
            self._observer = observer
        log.debug(
            "Event source started",
            directories=[str(d) for d in directories],
            observer=type(observer).__name__,
            close_events=self.close_events,
        )

    def stop(self) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=self.config.stop_timeout)
        if observer.is_alive():
            log.warning("Observer did not stop in time", timeout=self.config.stop_timeout)
        else:
            log.debug("Event source stopped")


# 🔼⚙️🔚
