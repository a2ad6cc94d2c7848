"""
certkeeper - ACME certificate lifecycle coordinator
"""

__version__ = "0.1.0"

from .certbot import challenge_file
from .certification import ensure_cert
from .config import CertificationConfig, LocalAcmeServer, load_certification_config
from .coordinator import RenewalCoordinator
from .keys import KeyMaterial, derived_paths, fingerprint, https_keys, keys_available
from .types import (
    CertificationMode,
    Failure,
    NewCertificate,
    NoChange,
    RenewalOutcome,
    SchedulerPhase,
)

__all__ = [
    "CertificationConfig",
    "CertificationMode",
    "Failure",
    "KeyMaterial",
    "LocalAcmeServer",
    "NewCertificate",
    "NoChange",
    "RenewalCoordinator",
    "RenewalOutcome",
    "SchedulerPhase",
    "challenge_file",
    "derived_paths",
    "ensure_cert",
    "fingerprint",
    "https_keys",
    "keys_available",
    "load_certification_config",
]
