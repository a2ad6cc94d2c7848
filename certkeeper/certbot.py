"""
certbot invocation.

certkeeper does not speak ACME itself. Issuance and renewal are delegated to
the ``certbot`` executable, with all of its state kept under
``base_folder``. Each call blocks until certbot exits and returns its exit
status together with the combined stdout/stderr.
"""

import logging
import subprocess
from pathlib import Path

from .config import CertificationConfig, LocalAcmeServer
from .keys import config_folder

logger = logging.getLogger(__name__)

# Exit status reported when the certbot executable cannot be started
COMMAND_NOT_FOUND = 127


def work_folder(config: CertificationConfig) -> Path:
    return config.base_folder / "work"


def log_folder(config: CertificationConfig) -> Path:
    return config.base_folder / "log"


def webroot_folder(base_folder: Path) -> Path:
    return base_folder / "webroot"


def challenge_file(base_folder: Path | str, token: str) -> Path:
    """Path where certbot places the HTTP-01 response for ``token``.

    The HTTP server must serve this file at
    ``/.well-known/acme-challenge/<token>``.
    """
    return webroot_folder(Path(base_folder)) / ".well-known" / "acme-challenge" / token


def ensure_folders(config: CertificationConfig) -> None:
    for folder in (
        config_folder(config),
        work_folder(config),
        log_folder(config),
        webroot_folder(config.base_folder),
    ):
        folder.mkdir(parents=True, exist_ok=True)


def ca_url(config: CertificationConfig) -> str:
    """ACME directory URL, resolving a local server reference to loopback."""
    if isinstance(config.ca_url, LocalAcmeServer):
        return f"http://{config.ca_url.host}:{config.ca_url.port}/directory"
    return config.ca_url


def common_args(config: CertificationConfig) -> list[str]:
    return [
        "--server",
        ca_url(config),
        "--work-dir",
        str(work_folder(config)),
        "--config-dir",
        str(config_folder(config)),
        "--logs-dir",
        str(log_folder(config)),
        "--no-self-upgrade",
        "--non-interactive",
    ]


def certonly_args(config: CertificationConfig) -> list[str]:
    args = [
        "certonly",
        "-m",
        config.email,
        "--webroot",
        "--webroot-path",
        str(webroot_folder(config.base_folder)),
        "--agree-tos",
    ]
    for domain in config.domains:
        args.extend(["-d", domain])
    return args


def renew_args(config: CertificationConfig, force: bool = False) -> list[str]:
    args = [
        "-m",
        config.email,
        "--agree-tos",
        "--no-random-sleep-on-renew",
        "--cert-name",
        config.domain,
    ]
    if force:
        args.insert(0, "--force-renewal")
    return ["renew", *args]


def run_certbot(config: CertificationConfig, args: list[str]) -> tuple[int, str]:
    """Run certbot with ``args`` plus the common arguments.

    Returns:
        Tuple of (exit_status, combined_output)
    """
    cmd = [config.certbot_command, *args, *common_args(config)]
    logger.debug(f"Running certbot command: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError:
        error_msg = (
            f"{config.certbot_command} not found. Please install certbot and try again."
        )
        logger.debug(error_msg)
        return COMMAND_NOT_FOUND, error_msg

    output = result.stdout or ""
    if result.returncode != 0:
        logger.debug(f"certbot exited with status {result.returncode}")
    return result.returncode, output


def obtain(config: CertificationConfig) -> tuple[int, str]:
    """Request a first certificate for all configured domains."""
    logger.info(f"Requesting certificate for {', '.join(config.domains)}")
    return run_certbot(config, certonly_args(config))


def renew(config: CertificationConfig, force: bool = False) -> tuple[int, str]:
    """Renew the certificate named after ``config.domain``.

    Without ``force`` certbot decides whether renewal is due and may exit 0
    without touching anything.
    """
    logger.info(f"Renewing certificate {config.domain} (force={force})")
    return run_certbot(config, renew_args(config, force))
