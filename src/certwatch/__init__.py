#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Watch a TLS certificate and key on disk and publish every reload."""

from provide.foundation.utils.versioning import get_version

from certwatch.channel import OutcomeChannel
from certwatch.config import WatcherConfig
from certwatch.errors import (
    CertificateLoadError,
    CertWatchError,
    ChannelClosedError,
    FileError,
    ParseError,
    WatcherRuntimeError,
    WatcherSetupError,
)
from certwatch.loader import CertificatePair, LoadOutcome, WatchTarget, load_key_pair, parse_key_pair
from certwatch.sentinel import Sentinel
from certwatch.source import EventSource, PairChangedEvent, WatchdogEventSource
from certwatch.watcher import CertificateWatcher, WatchState

__version__ = get_version("certwatch", caller_file=__file__)

__all__ = [
    "CertWatchError",
    "CertificateLoadError",
    "CertificatePair",
    "CertificateWatcher",
    "ChannelClosedError",
    "EventSource",
    "FileError",
    "LoadOutcome",
    "OutcomeChannel",
    "PairChangedEvent",
    "ParseError",
    "Sentinel",
    "WatchState",
    "WatchTarget",
    "WatchdogEventSource",
    "WatcherConfig",
    "WatcherRuntimeError",
    "WatcherSetupError",
    "__version__",
    "load_key_pair",
    "parse_key_pair",
]

# 🔼⚙️🔚
