#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Runtime configuration for certificate watchers."""

from __future__ import annotations

from collections.abc import Mapping
import os
from typing import Any

from attrs import define, field, validators

ENV_PREFIX = "CERTWATCH_"

DEFAULT_BUFFER_SIZE = 1
DEFAULT_EVENT_QUEUE_SIZE = 64
DEFAULT_POLLING_INTERVAL = 1.0
DEFAULT_STOP_TIMEOUT = 5.0

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


class ConfigurationError(ValueError):
    """Raised when an environment variable holds an invalid value."""


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _positive(instance: Any, attribute: Any, value: float) -> None:
    if value <= 0:
        raise ValueError(f"'{attribute.name}' must be positive, got {value}")


@define(frozen=True)
class WatcherConfig:
    """Tunables for a ``CertificateWatcher``.

    Attributes:
        buffer_size: Capacity of each outbound channel. The watch loop waits
            for a reader (or shutdown) once a channel is full.
        event_queue_size: Bound on event source failures waiting to be published.
            Change signals never queue up: while a reload is pending, further
            changes are folded into it.
        use_polling: Use watchdog's PollingObserver instead of the native backend.
        polling_interval: Seconds between polls when ``use_polling`` is set.
        stop_timeout: Seconds to wait for observer threads to exit on close.
    """

    buffer_size: int = field(default=DEFAULT_BUFFER_SIZE, validator=[validators.instance_of(int), validators.ge(1)])
    event_queue_size: int = field(
        default=DEFAULT_EVENT_QUEUE_SIZE, validator=[validators.instance_of(int), validators.ge(1)]
    )
    use_polling: bool = field(default=False, validator=validators.instance_of(bool))
    polling_interval: float = field(default=DEFAULT_POLLING_INTERVAL, converter=float, validator=_positive)
    stop_timeout: float = field(default=DEFAULT_STOP_TIMEOUT, converter=float, validator=_positive)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> WatcherConfig:
        """Build a config from ``CERTWATCH_*`` environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        for name, convert in (
            ("buffer_size", int),
            ("event_queue_size", int),
            ("polling_interval", float),
            ("stop_timeout", float),
        ):
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in env:
                try:
                    kwargs[name] = convert(env[key])
                except ValueError as e:
                    raise ConfigurationError(f"{key} is not a valid {convert.__name__}: {env[key]!r}") from e

        polling_key = f"{ENV_PREFIX}USE_POLLING"
        if polling_key in env:
            kwargs["use_polling"] = _parse_bool(polling_key, env[polling_key])

        try:
            return cls(**kwargs)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e


# 🔼⚙️🔚
