"""
Fixtures for pytest.

The certbot executable is never run in tests: ``certkeeper.certbot`` calls
``subprocess.run``, which the ``fake_certbot`` fixture replaces with a
FakeCertbot that writes key material the way certbot lays it out.
"""

import logging
import subprocess
import threading
import time
from collections.abc import Callable, Generator
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from certkeeper.config import CertificationConfig, LocalAcmeServer
from certkeeper.logutil import logger as package_logger
from certkeeper.types import CertificationMode


class FakeCertbot:
    """Stand-in for ``subprocess.run`` when invoking certbot.

    ``certonly`` always issues a certificate. ``renew`` issues a new one when
    forced (unless ``rotate_on_force`` is False) or when ``is_due()`` is true.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.intervals: list[tuple[float, float]] = []
        self.exit_status = 0
        self.rotate_on_force = True
        self.is_due: Callable[[], bool] = lambda: False
        self.before_run: Callable[[int], None] | None = None
        self.issued = 0
        self._lock = threading.Lock()

    def __call__(self, cmd: list[str], **kwargs: object) -> subprocess.CompletedProcess:
        start = time.monotonic()
        with self._lock:
            self.calls.append(list(cmd))
            call_number = len(self.calls)

        if self.before_run is not None:
            self.before_run(call_number)

        action = "certonly" if "certonly" in cmd else "renew"

        if self.exit_status == 0 and self._should_issue(cmd, action):
            self._write_keys(cmd)

        self.intervals.append((start, time.monotonic()))
        return subprocess.CompletedProcess(
            cmd, self.exit_status, stdout=f"fake certbot {action}\n", stderr=None
        )

    def _should_issue(self, cmd: list[str], action: str) -> bool:
        if action == "certonly":
            return True
        if "--force-renewal" in cmd:
            return self.rotate_on_force
        return self.is_due()

    def _write_keys(self, cmd: list[str]) -> None:
        config_dir = Path(cmd[cmd.index("--config-dir") + 1])
        if "--cert-name" in cmd:
            domain = cmd[cmd.index("--cert-name") + 1]
        else:
            domain = cmd[cmd.index("-d") + 1]

        self.issued += 1
        live = config_dir / "live" / domain
        live.mkdir(parents=True, exist_ok=True)
        (live / "privkey.pem").write_text(f"key {self.issued}\n")
        (live / "cert.pem").write_text(f"cert {self.issued}\n")
        (live / "chain.pem").write_text("chain\n")

    @property
    def actions(self) -> list[str]:
        return ["certonly" if "certonly" in c else "renew" for c in self.calls]


@pytest.fixture
def fake_certbot() -> Generator[FakeCertbot, None, None]:
    fake = FakeCertbot()
    with patch("certkeeper.certbot.subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., CertificationConfig]:
    """Factory for configs rooted in tmp_path, defaulting to manual mode."""

    def _make(**overrides: object) -> CertificationConfig:
        values: dict[str, object] = {
            "base_folder": tmp_path / "acme",
            "cert_folder": tmp_path / "certs",
            "domain": "localhost",
            "ca_url": LocalAcmeServer(port=4002),
            "email": "admin@localhost",
            "mode": CertificationMode.MANUAL,
            "renewal_interval": timedelta(days=1),
        }
        values.update(overrides)
        return CertificationConfig.model_validate(values)

    return _make


@pytest.fixture
def config(make_config: Callable[..., CertificationConfig]) -> CertificationConfig:
    return make_config()


@pytest.fixture
def backup_config(
    make_config: Callable[..., CertificationConfig], tmp_path: Path
) -> CertificationConfig:
    return make_config(backup_path=tmp_path / "backup" / "certkeeper.tgz")


@pytest.fixture(autouse=True)
def reset_logger_handlers() -> Generator[None, None, None]:
    for h in package_logger.handlers[:]:
        package_logger.removeHandler(h)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
    yield
    for h in package_logger.handlers[:]:
        package_logger.removeHandler(h)
    package_logger.propagate = True
