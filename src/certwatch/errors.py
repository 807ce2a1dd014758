#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Exception hierarchy for certwatch.

Load failures (``FileError``, ``ParseError``) and runtime watch failures
(``WatcherRuntimeError``) are recoverable and are delivered as values on a
watcher's error channel. ``WatcherSetupError`` is raised from construction
and means no watcher exists."""

from __future__ import annotations

from pathlib import Path


class CertWatchError(Exception):
    """Base exception for certwatch errors."""


class CertificateLoadError(CertWatchError):
    """Base exception for failures to load a certificate pair."""


class FileError(CertificateLoadError):
    """Raised when a certificate or key file cannot be read."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"failed to read '{self.path}': {reason}")


class ParseError(CertificateLoadError):
    """Raised when PEM content is invalid or the certificate and key do not match."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"tls: {reason}")


class WatcherSetupError(CertWatchError):
    """Raised when the directory watch cannot be established."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"cannot watch '{self.path}': {reason}")


class WatcherRuntimeError(CertWatchError):
    """Reported when the notification backend fails after the watch started."""


class ChannelClosedError(CertWatchError):
    """Raised to receivers and senders of a closed outcome channel."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"channel '{name}' is closed")


# 🔼⚙️🔚
