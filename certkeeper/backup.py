"""
Backup and restore of the certificate store.

The whole of ``base_folder`` (certbot account, configuration and key
material) is kept in one gzip tar archive so that a fresh deployment can
resume with the same certificate instead of requesting a new one.
"""

import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

from .config import CertificationConfig
from .types import BackupError

logger = logging.getLogger(__name__)


def backup(config: CertificationConfig) -> Path | None:
    """Archive ``base_folder`` to ``backup_path``, replacing any old archive.

    The archive is written to a temporary file next to ``backup_path`` and
    moved into place, so readers never see a partial archive.

    Returns:
        The archive path, or None if no backup path is configured

    Raises:
        BackupError: If the archive cannot be written
    """
    if config.backup_path is None:
        return None

    target = config.backup_path
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
        )
        os.close(fd)
        try:
            with tarfile.open(tmp_name, "w:gz") as archive:
                archive.add(config.base_folder, arcname=".")
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except (OSError, tarfile.TarError) as e:
        raise BackupError(f"Failed to back up {config.base_folder}: {e}") from e

    logger.info(f"Backed up certificate store to {target}")
    return target


def restore_if_needed(config: CertificationConfig) -> bool:
    """Restore ``base_folder`` from the backup archive if it does not exist.

    Existing state is never overwritten. Extraction happens in a temporary
    sibling directory which is renamed to ``base_folder`` only once complete.

    Returns:
        True if the store was restored

    Raises:
        BackupError: If the archive cannot be extracted
    """
    if config.backup_path is None:
        return False
    if not config.backup_path.exists():
        return False
    if config.base_folder.exists():
        return False

    base_folder = config.base_folder
    logger.info(f"Restoring certificate store from {config.backup_path}")
    try:
        base_folder.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{base_folder.name}.", dir=base_folder.parent)
        )
        try:
            with tarfile.open(config.backup_path, "r:gz") as archive:
                archive.extractall(staging, filter="data")
            os.rename(staging, base_folder)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
    except (OSError, tarfile.TarError) as e:
        raise BackupError(
            f"Failed to restore {base_folder} from {config.backup_path}: {e}"
        ) from e

    logger.info(f"Restored certificate store into {base_folder}")
    return True
