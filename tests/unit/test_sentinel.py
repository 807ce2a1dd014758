#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Tests for the Sentinel certificate holder."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from provide.testkit.mocking import Mock

from certwatch.errors import ParseError
from certwatch.sentinel import Sentinel
from certwatch.watcher import CertificateWatcher
from tests.helpers.certificates import PemPair, make_pem_pair
from tests.helpers.sources import FakeEventSource

TIMEOUT = 1.0


async def wait_for_calls(mock: Mock, count: int) -> None:
    async def poll() -> None:
        while mock.call_count < count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), TIMEOUT)


class TestSentinel:
    """Sentinel keeps the last good pair across failed reloads."""

    async def test_no_certificate_before_first_success(
        self, empty_files: tuple[Path, Path], fake_source: FakeEventSource
    ) -> None:
        on_error = Mock()
        watcher = CertificateWatcher.create(*empty_files, source=fake_source)

        async with Sentinel(watcher, on_error=on_error) as sentinel:
            await wait_for_calls(on_error, 1)
            with pytest.raises(LookupError):
                sentinel.get_certificate()
            assert sentinel.current is None

        assert isinstance(on_error.call_args[0][0], ParseError)

    async def test_serves_latest_pair(
        self, valid_files: tuple[Path, Path], fake_source: FakeEventSource, pem_pair: PemPair
    ) -> None:
        watcher = CertificateWatcher.create(*valid_files, source=fake_source)

        async with Sentinel(watcher) as sentinel:
            pair = await sentinel.wait_for_certificate(TIMEOUT)
            assert pair.certificate_pem == pem_pair.cert_pem
            assert sentinel.get_certificate() is pair

    async def test_failed_reload_keeps_previous_pair(
        self, valid_files: tuple[Path, Path], fake_source: FakeEventSource
    ) -> None:
        cert, _ = valid_files
        on_error = Mock()
        watcher = CertificateWatcher.create(*valid_files, source=fake_source)

        async with Sentinel(watcher, on_error=on_error) as sentinel:
            good = await sentinel.wait_for_certificate(TIMEOUT)

            cert.write_bytes(b"")
            fake_source.emit_change(cert)
            await wait_for_calls(on_error, 1)

            assert sentinel.get_certificate() is good

    async def test_rotation_replaces_pair(
        self, valid_files: tuple[Path, Path], fake_source: FakeEventSource
    ) -> None:
        cert, key = valid_files
        watcher = CertificateWatcher.create(*valid_files, source=fake_source)

        async with Sentinel(watcher) as sentinel:
            first = await sentinel.wait_for_certificate(TIMEOUT)
            rotated = make_pem_pair("rotated.test")
            key.write_bytes(rotated.key_pem)
            cert.write_bytes(rotated.cert_pem)
            fake_source.emit_change(cert)

            async def rotated_in() -> None:
                while sentinel.get_certificate() is first:
                    await asyncio.sleep(0.01)

            await asyncio.wait_for(rotated_in(), TIMEOUT)
            assert sentinel.get_certificate().subject == "CN=rotated.test"

    async def test_failing_callback_does_not_stop_reader(
        self, empty_files: tuple[Path, Path], fake_source: FakeEventSource
    ) -> None:
        on_error = Mock(side_effect=RuntimeError("callback bug"))
        watcher = CertificateWatcher.create(*empty_files, source=fake_source)

        async with Sentinel(watcher, on_error=on_error):
            await wait_for_calls(on_error, 1)
            fake_source.emit_change(empty_files[0])
            await wait_for_calls(on_error, 2)

    async def test_stop_closes_watcher(self, empty_files: tuple[Path, Path], fake_source: FakeEventSource) -> None:
        watcher = CertificateWatcher.create(*empty_files, source=fake_source)
        sentinel = Sentinel(watcher)
        sentinel.start()
        sentinel.start()

        await asyncio.wait_for(sentinel.stop(), TIMEOUT)

        assert watcher.closed
        assert fake_source.stop_calls == 1


# 🔼⚙️🔚
