"""
Libvirt domain lifecycle via virt-install and virsh.
"""

import logging
import shutil
import time
from pathlib import Path
from typing import List, Optional

from kvmguest.cloud_init import network_args
from kvmguest.commands import capture_command, run_command, try_command
from kvmguest.config import Config
from kvmguest.models import ProvisioningError, VmDescriptor

logger = logging.getLogger(__name__)


class VMManager:
    """Installs, inspects and removes KVM guests."""

    @staticmethod
    def _base_install_args(name: str, descriptor: VmDescriptor, disk: Path) -> List[str]:
        return [
            "virt-install",
            "--name",
            name,
            "--ram",
            str(descriptor.ram),
            "--vcpus",
            str(descriptor.vcpus),
            "--disk",
            f"path={disk},format=qcow2,device=disk,bus=virtio",
        ]

    @staticmethod
    def install_cloud_init_guest(name: str, descriptor: VmDescriptor, disk: Path, iso: Path) -> None:
        """Import an existing disk and attach the seed ISO as a cdrom."""
        args = VMManager._base_install_args(name, descriptor, disk)
        args += ["--disk", f"path={iso},device=cdrom"]
        args += network_args(descriptor)
        args += ["--os-variant", descriptor.os_variant, "--import", "--noautoconsole"]

        logger.info(f"Installing VM {name}...")
        run_command(args, "Failed to install VM")

    @staticmethod
    def install_pxe_guest(name: str, descriptor: VmDescriptor, disk: Path) -> None:
        """Define a guest that installs its OS over the network."""
        if descriptor.pxe_boot_interface:
            logger.info(f"Using interface {descriptor.pxe_boot_interface} for PXE boot")
        else:
            logger.info("Using first interface for PXE boot")

        args = VMManager._base_install_args(name, descriptor, disk)
        args += network_args(descriptor)
        args += ["--pxe", "--boot", "network", "--os-variant", descriptor.os_variant, "--noautoconsole"]

        logger.info(f"Installing PXE boot VM {name}...")
        run_command(args, "Failed to install VM")

    @staticmethod
    def eject_seed(name: str, delay: Optional[int] = None) -> bool:
        """Detach the cloud-init cdrom from the persistent definition."""
        logger.info("Cleaning up cloud-init attachment...")
        time.sleep(Config.EJECT_DELAY if delay is None else delay)
        return try_command(
            ["virsh", "change-media", name, "sda", "--eject", "--config"],
            "Failed to eject cloud-init media, may need manual cleanup",
        )

    @staticmethod
    def show_addresses(name: str) -> bool:
        logger.info(f"Fetching IP addresses for {name}...")
        return try_command(
            ["virsh", "domifaddr", name],
            "Could not get IP addresses for VM, it may still be booting",
        )

    @staticmethod
    def list_domains() -> List[str]:
        """Names of all defined domains, running or not."""
        out = capture_command(["virsh", "list", "--all", "--name"])
        if out is None:
            raise ProvisioningError("Failed to list VMs")
        return [line.strip() for line in out.splitlines() if line.strip()]

    @staticmethod
    def domain_state(name: str) -> Optional[str]:
        out = capture_command(["virsh", "domstate", name])
        return out.strip() if out is not None else None

    @staticmethod
    def remove_guest(name: str, destroy_delay: Optional[int] = None) -> None:
        """
        Remove a guest definition and everything provisioned for it.

        Undefine failure is fatal; leftover file cleanup only warns.
        """
        if VMManager.domain_state(name) == "running":
            logger.info("VM is running. Shutting down...")
            try_command(["virsh", "destroy", name], "Failed to force shutdown")
            time.sleep(Config.DESTROY_DELAY if destroy_delay is None else destroy_delay)

        logger.info("Removing VM definition...")
        if not try_command(
            ["virsh", "undefine", name, "--remove-all-storage"],
            "Standard undefine failed, trying without storage flag...",
        ):
            run_command(["virsh", "undefine", name], "Failed to undefine VM")

        disk = Config.disk_path(name)
        if disk.is_file():
            logger.info(f"Removing disk image: {disk}")
            _remove_path(disk, "Failed to remove disk image")
        else:
            logger.info("Disk image not found (may have been removed by virsh)")

        seed_dir = Config.cloud_init_dir(name)
        if seed_dir.is_dir():
            logger.info(f"Removing cloud-init directory: {seed_dir}")
            _remove_path(seed_dir, "Failed to remove cloud-init directory")
        else:
            logger.info("Cloud-init directory not found (VM may not use cloud-init)")

        legacy_iso = Config.legacy_iso_path(name)
        if legacy_iso.is_file():
            logger.info(f"Removing cloud-init ISO: {legacy_iso}")
            _remove_path(legacy_iso, "Failed to remove cloud-init ISO")


def _remove_path(path: Path, warning: str) -> None:
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        logger.warning(f"{warning}: {e}")
