#!/usr/bin/env python3
"""
Command line entry point for certkeeper.

``certkeeper run`` keeps a certificate current for as long as the process
lives; the other commands perform single maintenance steps against the same
configuration.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

import click
from rich.markup import escape

from . import backup as backup_mod
from .certbot import ca_url
from .challenge_server import HTTPChallengeServer
from .config import (
    CertificationConfig,
    build_certification_config,
    get_default_config_path,
    load_raw_config,
)
from .config_utils import save_yaml_config
from .console import console_manager
from .coordinator import RenewalCoordinator
from .keys import (
    certificate_expiry,
    days_until_expiry,
    derived_paths,
    fingerprint,
    keys_available,
)
from .logutil import init_logging, logger
from .types import (
    CertificateLoadError,
    CertificationMode,
    Error,
    Failure,
    NewCertificate,
    RenewalOutcome,
    Result,
    Success,
)
from .utils import handle_exception, run_hook

TEMPLATE_CONFIG: dict[str, Any] = {
    "domain": "example.com",
    "extra_domains": [],
    "email": "admin@example.com",
    "ca_url": "https://acme-staging-v02.api.letsencrypt.org/directory",
    "base_folder": "/var/lib/certkeeper/acme",
    "cert_folder": "/var/lib/certkeeper/certs",
    "backup_path": None,
    "mode": "auto",
    "renewal_interval": "1d",
    "certbot_command": "certbot",
    "log_level": "INFO",
}


def handle_result(result: Result, exit_on_error: bool = True) -> None:
    """Handle command results using console manager."""
    exit_code = 0
    if isinstance(result, Success):
        if result.message:
            console_manager.print_success(result.message)
    elif isinstance(result, Error):
        console_manager.print_error(escape(result.error))
        if result.recovery_suggestions:
            console_manager.print_note(escape(result.recovery_suggestions))
        if result.exception is not None:
            logger.debug("Command failed", exc_info=result.exception)
        exit_code = 1

    if exit_on_error and exit_code:
        sys.exit(exit_code)


def outcome_to_result(outcome: RenewalOutcome | None, domain: str) -> Result:
    if outcome is None:
        return Error(error="Certificate check was skipped: a run is already active")
    if isinstance(outcome, Failure):
        return Error(
            error=f"certbot failed for {domain}:\n{outcome.log.strip()}",
            recovery_suggestions="See the certbot log folder under base_folder/log",
        )
    if isinstance(outcome, NewCertificate):
        return Success(message=f"New certificate obtained for {domain}", data=outcome)
    return Success(message=f"Certificate for {domain} is unchanged", data=outcome)


def _load_config(ctx: click.Context) -> CertificationConfig:
    raw = load_raw_config(ctx.obj["config_path"])
    init_logging(ctx.obj["log_level"] or raw.get("log_level"))
    return build_certification_config(raw)


def _new_cert_callback(reload_command: str | None) -> Any:
    if not reload_command:
        return None

    async def on_new_cert() -> None:
        await asyncio.to_thread(run_hook, reload_command)

    return on_new_cert


async def _run_service(
    config: CertificationConfig,
    reload_command: str | None,
    serve_challenges: bool,
    http_host: str,
    http_port: int,
) -> Result:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    if config.mode is CertificationMode.MANUAL:
        logger.warning("mode is 'manual': no periodic renewal will be scheduled")

    challenge_server: HTTPChallengeServer | None = None
    if serve_challenges:
        challenge_server = HTTPChallengeServer(
            config.base_folder, host=http_host, port=http_port
        )
        await challenge_server.start()

    coordinator = RenewalCoordinator(
        config, on_new_cert=_new_cert_callback(reload_command)
    )
    try:
        start_result = await coordinator.start()
        if isinstance(start_result, Error):
            return start_result
        await stop_event.wait()
        logger.info("Shutdown requested")
    finally:
        await coordinator.stop()
        if challenge_server is not None:
            await challenge_server.stop()

    return Success(message="certkeeper stopped")


async def _renew_once(
    config: CertificationConfig, force: bool, reload_command: str | None
) -> Result:
    manual = config.model_copy(update={"mode": CertificationMode.MANUAL})
    coordinator = RenewalCoordinator(
        manual, on_new_cert=_new_cert_callback(reload_command)
    )
    start_result = await coordinator.start()
    if isinstance(start_result, Error):
        return start_result

    try:
        if force:
            outcome: RenewalOutcome | None = await coordinator.force_renew()
        else:
            outcome = await coordinator.tick()
    finally:
        await coordinator.stop()

    return outcome_to_result(outcome, config.domain)


async def _restore_once(
    config: CertificationConfig, reload_command: str | None
) -> Result | None:
    manual = config.model_copy(update={"mode": CertificationMode.MANUAL})
    coordinator = RenewalCoordinator(
        manual, on_new_cert=_new_cert_callback(reload_command)
    )
    start_result = await coordinator.start()
    if isinstance(start_result, Error):
        return start_result

    try:
        if not coordinator.restore_pending:
            return None
        outcome = await coordinator.force_renew()
    finally:
        await coordinator.stop()

    result = outcome_to_result(outcome, config.domain)
    if isinstance(result, Success):
        result.message = f"Restored {config.base_folder}. {result.message}"
    else:
        result.recovery_suggestions = (
            f"{config.base_folder} was restored but not yet confirmed; run "
            "'certkeeper renew --force' once certbot succeeds"
        )
    return result


def _status_rows(config: CertificationConfig) -> list[tuple[str, str]]:
    keys = derived_paths(config)
    available = keys_available(config)
    rows = [
        ("Domains", ", ".join(config.domains)),
        ("ACME server", ca_url(config)),
        ("Mode", config.mode.value),
        ("Renewal interval", str(config.renewal_interval)),
        ("Base folder", str(config.base_folder)),
        ("Key material", "available" if available else "missing"),
        ("Private key", str(keys.keyfile)),
        ("Certificate", str(keys.certfile)),
        ("Chain", str(keys.chainfile)),
    ]

    try:
        expiry = certificate_expiry(config)
    except CertificateLoadError as e:
        logger.warning(str(e))
        rows.append(("Expires", "unreadable"))
    else:
        if expiry is not None:
            rows.append(("Expires", expiry.isoformat()))
            rows.append(("Days left", str(days_until_expiry(config))))
    if available:
        rows.append(("Fingerprint", fingerprint(config) or "-"))

    if config.backup_path is None:
        rows.append(("Backup", "not configured"))
    else:
        state = "present" if config.backup_path.exists() else "absent"
        rows.append(("Backup", f"{config.backup_path} ({state})"))
    return rows


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file path",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """certkeeper: ACME certificate lifecycle coordinator."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level
    if ctx.invoked_subcommand is None:
        console_manager.print("certkeeper: ACME certificate lifecycle coordinator")
        console_manager.print("Use --help to see available commands")


@cli.command()
@click.option(
    "--reload-command",
    default=None,
    help="Command to run after each new certificate (e.g. 'nginx -s reload')",
)
@click.option(
    "--serve-challenges",
    is_flag=True,
    help="Serve HTTP-01 challenges from the certbot webroot",
)
@click.option("--http-host", default="0.0.0.0", help="Challenge server host")
@click.option("--http-port", type=int, default=80, help="Challenge server port")
@click.pass_context
def run(
    ctx: click.Context,
    reload_command: str | None,
    serve_challenges: bool,
    http_host: str,
    http_port: int,
) -> None:
    """Keep the certificate current until interrupted."""
    config = _load_config(ctx)
    result = asyncio.run(
        _run_service(config, reload_command, serve_challenges, http_host, http_port)
    )
    handle_result(result)


@cli.command()
@click.option("--force", is_flag=True, help="Renew even if the certificate is not due")
@click.option(
    "--reload-command",
    default=None,
    help="Command to run if a new certificate was obtained",
)
@click.pass_context
def renew(ctx: click.Context, force: bool, reload_command: str | None) -> None:
    """Obtain or renew the certificate once."""
    config = _load_config(ctx)
    handle_result(asyncio.run(_renew_once(config, force, reload_command)))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show key material, expiry and backup state."""
    config = _load_config(ctx)
    console_manager.print_status_table(
        f"Certificate status: {config.domain}", _status_rows(config)
    )


@cli.command(name="backup")
@click.pass_context
def backup_cmd(ctx: click.Context) -> None:
    """Write the backup archive now."""
    config = _load_config(ctx)
    if config.backup_path is None:
        handle_result(
            Error(
                error="No backup_path configured",
                recovery_suggestions="Set backup_path in the configuration file",
            )
        )
        return
    if not config.base_folder.exists():
        handle_result(Error(error=f"Nothing to back up: {config.base_folder} missing"))
        return

    path = backup_mod.backup(config)
    handle_result(Success(message=f"Backup written to {path}"))


@cli.command()
@click.option(
    "--reload-command",
    default=None,
    help="Command to run once the restored certificate has been checked",
)
@click.pass_context
def restore(ctx: click.Context, reload_command: str | None) -> None:
    """Restore base_folder from the backup archive if it does not exist.

    A successful restore is followed by a forced renewal, which backs up and
    announces the restored key material like any new certificate.
    """
    config = _load_config(ctx)
    result = asyncio.run(_restore_once(config, reload_command))
    if result is None:
        console_manager.print_note(
            "Nothing restored: backup not configured, archive missing, "
            "or base folder already exists"
        )
        return
    handle_result(result)


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing configuration file")
@click.pass_context
def init_config(ctx: click.Context, force: bool) -> None:
    """Write a configuration file template."""
    config_file = ctx.obj["config_path"] or get_default_config_path()
    if config_file.exists() and not force:
        handle_result(
            Error(
                error=f"Configuration file already exists: {config_file}",
                recovery_suggestions="Use --force to overwrite",
            )
        )
        return

    save_yaml_config(config_file, TEMPLATE_CONFIG)
    console_manager.print_success(f"Configuration written to {config_file}")
    console_manager.print("Edit domain, email and ca_url before running certkeeper.")


def main() -> int:
    """Main entry point.

    Returns:
        int: Exit code (0 for success, non-zero for error)
    """
    try:
        init_logging()
        cli(standalone_mode=False)
        return 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        console_manager.print_error("Aborted")
        return 1
    except Exception as e:
        handle_exception(e, exit_on_error=False)
        return 1


if __name__ == "__main__":
    sys.exit(main())
