#
# SPDX-FileCopyrightText: Copyright (c) 2025 provide.io llc. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#

"""Loading and parsing of PEM encoded certificate/key pairs.

``load_key_pair`` is the only entry point the watch loop needs: it reads both
files and hands the bytes to ``parse_key_pair``. Both functions are pure and
may be called from any thread."""

from __future__ import annotations

import hashlib
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from attrs import define, field
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from provide.foundation.logger import get_logger

from certwatch.errors import CertificateLoadError, FileError, ParseError

log = get_logger(__name__)

_PEM_BLOCK = re.compile(
    rb"-----BEGIN (?P<label>[A-Z0-9 ]+)-----\r?\n.*?-----END (?P=label)-----",
    re.DOTALL,
)

_PUBLIC_KEY_FORMAT = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)


def _non_empty(instance: Any, attribute: Any, value: Path) -> None:
    # Path("") collapses to ".", which is never a file.
    if str(value) == ".":
        raise ValueError(f"'{attribute.name}' must be a non-empty path")


@define(frozen=True)
class WatchTarget:
    """The certificate and key paths watched for the lifetime of a watcher."""

    cert_path: Path = field(converter=Path, validator=_non_empty)
    key_path: Path = field(converter=Path, validator=_non_empty)

    @property
    def directories(self) -> tuple[Path, ...]:
        """Distinct parent directories holding the two files, in watch order."""
        dirs: list[Path] = []
        for path in (self.cert_path, self.key_path):
            parent = path.absolute().parent
            if parent not in dirs:
                dirs.append(parent)
        return tuple(dirs)

    def _candidates(self) -> set[str]:
        names: set[str] = set()
        for path in (self.cert_path, self.key_path):
            absolute = path.absolute()
            names.add(os.path.normpath(absolute))
            names.add(os.path.normpath(absolute.parent.resolve() / absolute.name))
        return names

    def matches(self, path: str | bytes | os.PathLike[str] | None) -> bool:
        """Return True if *path* names the certificate or the key file."""
        if not path:
            return False
        normalized = os.path.normpath(os.path.abspath(os.fsdecode(path)))
        return normalized in self._candidates()


@define(frozen=True)
class CertificatePair:
    """A parsed certificate chain and the private key matching its leaf."""

    chain: tuple[x509.Certificate, ...]
    private_key: Any
    certificate_pem: bytes = field(repr=False)
    private_key_pem: bytes = field(repr=False)

    @property
    def leaf(self) -> x509.Certificate:
        return self.chain[0]

    @property
    def fingerprint(self) -> str:
        """SHA-256 hex digest of the leaf certificate in DER form."""
        return hashlib.sha256(self.leaf.public_bytes(serialization.Encoding.DER)).hexdigest()

    @property
    def subject(self) -> str:
        return self.leaf.subject.rfc4514_string()

    @property
    def not_valid_after(self) -> datetime:
        return self.leaf.not_valid_after_utc


@define(frozen=True)
class LoadOutcome:
    """Result of one load attempt: exactly one of ``pair`` and ``error`` is set."""

    pair: CertificatePair | None = None
    error: CertificateLoadError | None = None

    def __attrs_post_init__(self) -> None:
        if (self.pair is None) == (self.error is None):
            raise ValueError("LoadOutcome needs exactly one of pair and error")

    @property
    def ok(self) -> bool:
        return self.error is None


def _pem_blocks(data: bytes) -> list[tuple[str, bytes]]:
    return [(m.group("label").decode("ascii"), m.group(0)) for m in _PEM_BLOCK.finditer(data)]


def _parse_chain(cert_pem: bytes) -> tuple[x509.Certificate, ...]:
    blocks = _pem_blocks(cert_pem)
    if not blocks:
        raise ParseError("failed to find any PEM data in certificate input")

    cert_blocks = [block for label, block in blocks if label == "CERTIFICATE"]
    if not cert_blocks:
        skipped = [label for label, _ in blocks]
        if any(label.endswith("PRIVATE KEY") for label in skipped):
            raise ParseError(
                "failed to find certificate PEM data in certificate input, but did find a private key;"
                " PEM inputs may have been switched"
            )
        raise ParseError(
            'failed to find "CERTIFICATE" PEM block in certificate input after skipping PEM blocks '
            f"of the following types: {skipped}"
        )

    try:
        return tuple(x509.load_pem_x509_certificates(b"\n".join(cert_blocks)))
    except ValueError as e:
        raise ParseError(f"failed to parse certificate: {e}") from e


def _parse_private_key(key_pem: bytes) -> Any:
    blocks = _pem_blocks(key_pem)
    if not blocks:
        raise ParseError("failed to find any PEM data in key input")

    key_block = next((block for label, block in blocks if label.endswith("PRIVATE KEY")), None)
    if key_block is None:
        if any(label == "CERTIFICATE" for label, _ in blocks):
            raise ParseError("found a certificate rather than a key in the PEM for the private key")
        raise ParseError(
            'failed to find PEM block with type ending in "PRIVATE KEY" in key input after skipping '
            f"PEM blocks of the following types: {[label for label, _ in blocks]}"
        )

    try:
        return serialization.load_pem_private_key(key_block, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ParseError(f"failed to parse private key: {e}") from e


def parse_key_pair(cert_pem: bytes, key_pem: bytes) -> CertificatePair:
    """Parse a PEM certificate chain and private key into a ``CertificatePair``.

    Args:
        cert_pem: PEM bytes holding one or more CERTIFICATE blocks, leaf first
        key_pem: PEM bytes holding a private key block

    Returns:
        The parsed pair

    Raises:
        ParseError: If either input has no usable PEM data or the key does
            not belong to the leaf certificate
    """
    chain = _parse_chain(cert_pem)
    private_key = _parse_private_key(key_pem)

    try:
        leaf_public = chain[0].public_key().public_bytes(*_PUBLIC_KEY_FORMAT)
        key_public = private_key.public_key().public_bytes(*_PUBLIC_KEY_FORMAT)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise ParseError(f"unsupported key type: {e}") from e
    if leaf_public != key_public:
        raise ParseError("private key does not match public key")

    return CertificatePair(
        chain=chain,
        private_key=private_key,
        certificate_pem=cert_pem,
        private_key_pem=key_pem,
    )


def _read(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise FileError(path, e.strerror or str(e)) from e


def load_key_pair(cert_path: str | os.PathLike[str], key_path: str | os.PathLike[str]) -> CertificatePair:
    """Read both files fully and parse them into a ``CertificatePair``.

    Raises:
        FileError: If either file is missing or unreadable
        ParseError: If the contents do not form a valid pair
    """
    cert_pem = _read(Path(cert_path))
    key_pem = _read(Path(key_path))
    return parse_key_pair(cert_pem, key_pem)


def attempt_load(target: WatchTarget) -> LoadOutcome:
    """Load *target* and wrap the result, never raising a load error."""
    try:
        pair = load_key_pair(target.cert_path, target.key_path)
    except CertificateLoadError as e:
        log.warning("Certificate pair load failed", cert_path=str(target.cert_path), error=str(e))
        return LoadOutcome(error=e)
    log.debug(
        "Certificate pair loaded",
        cert_path=str(target.cert_path),
        subject=pair.subject,
        fingerprint=pair.fingerprint,
    )
    return LoadOutcome(pair=pair)


# 🔼⚙️🔚
