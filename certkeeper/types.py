"""
Type definitions for certkeeper.

Contains common result types, renewal outcomes and exceptions used across
the package.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


# Structured result types for the CLI and coordinator lifecycle
@dataclass
class Success:
    message: str = ""
    data: Any | None = None


@dataclass
class Error:
    error: str
    exception: Exception | None = None
    recovery_suggestions: str | None = None


# Union type for command results
Result = Success | Error


@dataclass(frozen=True)
class RenewalOutcome:
    """Result of a single certbot invocation.

    ``log`` holds the combined stdout/stderr of the invocation.
    """

    log: str = ""


@dataclass(frozen=True)
class NewCertificate(RenewalOutcome):
    """Key material on disk differs from what was there before the run."""


@dataclass(frozen=True)
class NoChange(RenewalOutcome):
    """certbot succeeded but left the key material untouched."""


@dataclass(frozen=True)
class Failure(RenewalOutcome):
    """certbot exited with a non-zero status, or the run raised an I/O error."""


class SchedulerPhase(str, Enum):
    """Phases of the renewal coordinator."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED_FOR_FORCE = "paused_for_force"


class CertificationMode(str, Enum):
    """Whether the coordinator runs periodic renewal on its own."""

    AUTO = "auto"
    MANUAL = "manual"


class CertkeeperError(Exception):
    """Base exception for certkeeper errors."""

    pass


class ConfigurationError(CertkeeperError):
    """Raised when the certification configuration is missing or invalid."""

    pass


class BackupError(CertkeeperError):
    """Raised when the certificate store cannot be archived or restored."""

    pass


class CertificateLoadError(CertkeeperError):
    """Raised when a certificate file exists but cannot be parsed."""

    pass
