"""
Utility functions for certkeeper.

Contains reusable helpers for reporting exceptions and running hook commands.
"""

import logging
import shlex
import subprocess
import sys
from typing import NoReturn

from .console import console_manager
from .types import BackupError, CertificateLoadError, ConfigurationError

logger = logging.getLogger(__name__)


def handle_exception(e: Exception, exit_on_error: bool = True) -> None | NoReturn:
    """Handle common exceptions consistently.

    Args:
        e: The exception to handle
        exit_on_error: Whether to exit the program on error

    Returns:
        None if exit_on_error is False, otherwise does not return
    """
    if isinstance(e, ConfigurationError):
        console_manager.print_error(str(e))
        console_manager.print_note(
            "Check the configuration file or run 'certkeeper init-config'"
        )
    elif isinstance(e, BackupError):
        console_manager.print_error(str(e))
    elif isinstance(e, CertificateLoadError):
        console_manager.print_error(str(e))
        console_manager.print_note("The certificate file may be corrupted")
    elif isinstance(e, subprocess.CalledProcessError):
        if e.output:
            console_manager.error_console.print(e.output, end="", markup=False)
        else:
            console_manager.print_error(f"Command failed with exit code {e.returncode}")
    elif isinstance(e, FileNotFoundError):
        console_manager.print_error(f"File not found: {getattr(e, 'filename', None)}")
    else:
        console_manager.print_error(str(e))

    if exit_on_error:
        sys.exit(1)

    return None


def run_hook(command: str) -> None:
    """Run a shell-style hook command, raising on a non-zero exit status.

    Raises:
        subprocess.CalledProcessError: If the command fails
    """
    args = shlex.split(command)
    logger.info(f"Running hook: {command}")
    subprocess.run(
        args,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
