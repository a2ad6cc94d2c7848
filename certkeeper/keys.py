"""
Key material inspection.

Locates the private key, certificate and chain files that certbot maintains
for a domain, and fingerprints their content so that a renewal which did not
touch them can be told apart from one that did.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509

from .config import CertificationConfig
from .types import CertificateLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyMaterial:
    """Paths of the files a TLS listener needs."""

    keyfile: Path
    certfile: Path
    chainfile: Path

    def files(self) -> tuple[Path, Path, Path]:
        # Fixed order: fingerprints depend on it
        return (self.keyfile, self.certfile, self.chainfile)

    def as_dict(self) -> dict[str, str]:
        return {
            "keyfile": str(self.keyfile),
            "certfile": str(self.certfile),
            "cacertfile": str(self.chainfile),
        }


def config_folder(config: CertificationConfig) -> Path:
    return config.base_folder / "config"


def derived_paths(config: CertificationConfig) -> KeyMaterial:
    """Return the key material paths certbot uses for ``config.domain``."""
    keys_folder = config_folder(config) / "live" / config.domain
    return KeyMaterial(
        keyfile=keys_folder / "privkey.pem",
        certfile=keys_folder / "cert.pem",
        chainfile=keys_folder / "chain.pem",
    )


def keys_available(config: CertificationConfig) -> bool:
    return all(path.exists() for path in derived_paths(config).files())


def https_keys(config: CertificationConfig) -> KeyMaterial | None:
    """Return the key material paths if all three files exist, else None."""
    if not keys_available(config):
        return None
    return derived_paths(config)


def fingerprint(config: CertificationConfig) -> str | None:
    """Digest of key, certificate and chain bytes, or None if any is missing.

    The digest is only compared for equality. An existing file that cannot be
    read raises OSError.
    """
    keys = https_keys(config)
    if keys is None:
        return None

    digest = hashlib.md5(usedforsecurity=False)
    for path in keys.files():
        digest.update(path.read_bytes())
    return digest.hexdigest()


def certificate_expiry(config: CertificationConfig) -> datetime | None:
    """Return the certificate's notAfter time in UTC, or None if missing.

    Raises:
        CertificateLoadError: If the certificate file cannot be parsed
    """
    certfile = derived_paths(config).certfile
    if not certfile.exists():
        return None

    try:
        cert = x509.load_pem_x509_certificate(certfile.read_bytes())
    except ValueError as e:
        raise CertificateLoadError(
            f"Failed to parse certificate {certfile}: {e}"
        ) from e

    return cert.not_valid_after_utc.astimezone(UTC)


def days_until_expiry(
    config: CertificationConfig, now: datetime | None = None
) -> int | None:
    """Whole days until the certificate expires, negative once expired."""
    expiry = certificate_expiry(config)
    if expiry is None:
        return None
    now = now or datetime.now(UTC)
    return (expiry - now).days
