"""Tests for ensure_cert outcome classification."""

from unittest.mock import patch

import pytest

from certkeeper.certification import ensure_cert
from certkeeper.config import CertificationConfig
from certkeeper.keys import derived_paths, fingerprint
from certkeeper.types import Failure, NewCertificate, NoChange

from tests.conftest import FakeCertbot


def test_first_issuance_then_no_change(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    first = ensure_cert(config)
    second = ensure_cert(config)

    assert isinstance(first, NewCertificate)
    assert first.log == "fake certbot certonly\n"
    assert isinstance(second, NoChange)
    assert fake_certbot.actions == ["certonly", "renew"]


def test_first_issuance_is_never_no_change(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    # Without existing keys a forced run still obtains
    assert fingerprint(config) is None
    assert isinstance(ensure_cert(config, force=True), NewCertificate)


def test_failure_on_nonzero_exit(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    fake_certbot.exit_status = 1

    outcome = ensure_cert(config)

    assert isinstance(outcome, Failure)
    assert outcome.log == "fake certbot certonly\n"


def test_failure_wins_even_if_keys_changed(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    ensure_cert(config)

    def rotate_then_fail(call_number: int) -> None:
        keys = derived_paths(config)
        keys.keyfile.write_text("partially rotated")
        fake_certbot.exit_status = 1

    fake_certbot.before_run = rotate_then_fail

    assert isinstance(ensure_cert(config, force=True), Failure)


def test_forced_renewal_yields_new_certificate(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    ensure_cert(config)

    outcome = ensure_cert(config, force=True)

    assert isinstance(outcome, NewCertificate)
    assert "--force-renewal" in fake_certbot.calls[-1]


def test_renewal_not_due_is_no_change(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    ensure_cert(config)
    before = fingerprint(config)

    assert isinstance(ensure_cert(config), NoChange)
    assert fingerprint(config) == before


def test_assume_changed_reports_new_certificate(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    ensure_cert(config)
    fake_certbot.rotate_on_force = False

    outcome = ensure_cert(config, force=True, assume_changed=True)

    assert isinstance(outcome, NewCertificate)
    assert fake_certbot.actions[-1] == "renew"


def test_working_folders_created(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    fake_certbot.exit_status = 2
    ensure_cert(config)

    for name in ("config", "work", "log", "webroot"):
        assert (config.base_folder / name).is_dir()


def test_unreadable_keys_propagate(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    ensure_cert(config)
    chain = derived_paths(config).chainfile
    chain.unlink()
    chain.mkdir()

    with pytest.raises(OSError):
        ensure_cert(config)


def test_renew_used_when_keys_available(
    config: CertificationConfig, fake_certbot: FakeCertbot
) -> None:
    ensure_cert(config)

    with patch("certkeeper.certification.certbot.obtain") as mock_obtain:
        ensure_cert(config)

    mock_obtain.assert_not_called()
    assert fake_certbot.actions[-1] == "renew"
