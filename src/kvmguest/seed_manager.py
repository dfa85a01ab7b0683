"""
Cloud-init seed directory handling.

Seed directories hold plaintext user-data (password hashes, SSH keys), so
they must be owned by root, group-readable by the hypervisor and closed to
everyone else.
"""

import grp
import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Optional

from kvmguest.commands import run_command
from kvmguest.config import Config
from kvmguest.models import CloudInitBundle, PermissionCheckError

logger = logging.getLogger(__name__)

META_DATA = "meta-data"
USER_DATA = "user-data"
NETWORK_CONFIG = "network-config"
SEED_FILES = (META_DATA, USER_DATA, NETWORK_CONFIG)
ISO_NAME = "cloud-init.iso"


class SeedManager:
    """Creates, checks and fills per-guest cloud-init directories."""

    def __init__(
        self,
        root: Optional[Path] = None,
        group: Optional[str] = None,
        mode: Optional[int] = None,
        owner: Optional[str] = None,
    ):
        self.root = Path(root) if root is not None else Config.CLOUD_INIT_ROOT
        self.group = group or Config.CLOUD_INIT_GROUP
        self.mode = mode if mode is not None else Config.CLOUD_INIT_MODE
        self.owner = owner or Config.CLOUD_INIT_OWNER

    def _create_secure_dir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
            shutil.chown(path, user=self.owner, group=self.group)
            os.chmod(path, self.mode)
        except (OSError, LookupError) as e:
            raise PermissionCheckError(f"Failed to create {path} with secure permissions: {e}") from e

    def verify_permissions(self, path: Path) -> None:
        """
        Check that path has the expected mode and group.

        Raises:
            PermissionCheckError: With the command that fixes the mismatch
        """
        st = path.stat()
        actual_mode = stat.S_IMODE(st.st_mode)
        if actual_mode != self.mode:
            raise PermissionCheckError(
                f"Security check failed: {path} has permissions {actual_mode:o} "
                f"(expected {self.mode:o}). Run: sudo chmod {self.mode:o} {path}"
            )

        try:
            actual_group = grp.getgrgid(st.st_gid).gr_name
        except KeyError:
            actual_group = str(st.st_gid)
        if actual_group != self.group:
            raise PermissionCheckError(
                f"Security check failed: {path} group is {actual_group} "
                f"(expected {self.group}). Run: sudo chgrp {self.group} {path}"
            )

    def ensure_parent_dir(self) -> None:
        if not self.root.is_dir():
            logger.info(f"Creating {self.root} parent directory...")
            self._create_secure_dir(self.root)
        self.verify_permissions(self.root)

    def prepare_instance_dir(self, vm_name: str) -> Path:
        """Create an empty seed directory for vm_name, clearing prior files."""
        directory = self.root / vm_name
        if not directory.is_dir():
            logger.info(f"Directory {directory} does not exist. Creating it...")
            self._create_secure_dir(directory)
            return directory

        logger.info(f"Directory {directory} already exists, verifying permissions...")
        self.verify_permissions(directory)
        for entry in directory.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        logger.info("Prior files removed.")
        return directory

    @staticmethod
    def write_bundle(directory: Path, bundle: CloudInitBundle) -> None:
        (directory / META_DATA).write_text(bundle.meta_data)
        (directory / NETWORK_CONFIG).write_text(bundle.network_config)
        (directory / USER_DATA).write_text(bundle.user_data)

    @staticmethod
    def copy_extra_files(source_dir: Path, directory: Path) -> int:
        """
        Copy additional files from a descriptor's local cloud-init/ directory.

        The generated seed files are never overwritten. Returns the count copied.
        """
        local = Path(source_dir) / Config.LOCAL_CLOUD_INIT_DIR
        if not local.is_dir():
            return 0

        logger.info("Found local cloud-init directory, copying additional files...")
        copied = 0
        for path in sorted(local.rglob("*")):
            if not path.is_file() or path.name in SEED_FILES:
                continue
            shutil.copy(path, directory / path.name)
            copied += 1
        return copied

    @staticmethod
    def build_iso(directory: Path) -> Path:
        iso_path = directory / ISO_NAME
        logger.info("Creating cloud-init ISO...")
        run_command(
            [
                "genisoimage",
                "-output",
                iso_path,
                "-volid",
                Config.ISO_VOLUME_ID,
                "-joliet",
                "-rock",
                directory,
            ],
            "Failed to create cloud-init ISO",
        )
        return iso_path
