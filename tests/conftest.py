#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Shared pytest fixtures for certwatch tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from certwatch.config import WatcherConfig
from tests.helpers.certificates import PemPair, make_pem_pair
from tests.helpers.sources import FakeEventSource


@pytest.fixture
def pem_pair() -> PemPair:
    """A valid self-signed certificate and matching key."""
    return make_pem_pair()


@pytest.fixture
def cert_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "tls"
    directory.mkdir()
    return directory


@pytest.fixture
def empty_files(cert_dir: Path) -> tuple[Path, Path]:
    """Empty (and therefore invalid) certificate and key files."""
    cert = cert_dir / "server.crt"
    key = cert_dir / "server.key"
    cert.touch()
    key.touch()
    return cert, key


@pytest.fixture
def valid_files(cert_dir: Path, pem_pair: PemPair) -> tuple[Path, Path]:
    """Certificate and key files holding ``pem_pair``."""
    cert = cert_dir / "server.crt"
    key = cert_dir / "server.key"
    cert.write_bytes(pem_pair.cert_pem)
    key.write_bytes(pem_pair.key_pem)
    return cert, key


@pytest.fixture
def fake_source() -> FakeEventSource:
    return FakeEventSource()


@pytest.fixture
def fast_config() -> WatcherConfig:
    """Config with short timeouts for tests."""
    return WatcherConfig(stop_timeout=2.0, polling_interval=0.1)


# 🔼⚙️🔚
