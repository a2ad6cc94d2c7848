"""Classify a certbot run by comparing key material before and after."""

import logging

from . import certbot
from .config import CertificationConfig
from .keys import fingerprint, keys_available
from .types import Failure, NewCertificate, NoChange, RenewalOutcome

logger = logging.getLogger(__name__)


def ensure_cert(
    config: CertificationConfig,
    force: bool = False,
    *,
    assume_changed: bool = False,
) -> RenewalOutcome:
    """Make sure a certificate exists, renewing it when certbot finds it due.

    Args:
        config: Certification settings
        force: Ask certbot to renew even if the certificate is not due
        assume_changed: Treat the key material as absent before the run, so a
            successful run is reported as a new certificate. Used right after
            the store was restored from a backup.

    Returns:
        NewCertificate, NoChange or Failure carrying certbot's output

    Raises:
        OSError: If existing key files cannot be read
    """
    certbot.ensure_folders(config)
    original_fingerprint = None if assume_changed else fingerprint(config)

    if keys_available(config):
        status, output = certbot.renew(config, force=force)
    else:
        status, output = certbot.obtain(config)

    if status != 0:
        return Failure(output)

    if fingerprint(config) != original_fingerprint:
        return NewCertificate(output)
    return NoChange(output)
