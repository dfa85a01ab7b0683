"""
Sequential deployment of one descriptor's guest instances.

Instances are provisioned one after another in name order. The first
failure propagates and aborts the rest of the batch.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

import typer

from kvmguest import cloud_init
from kvmguest.config import Config
from kvmguest.image_manager import ImageManager
from kvmguest.models import VmDescriptor
from kvmguest.seed_manager import SeedManager
from kvmguest.vm_manager import VMManager

logger = logging.getLogger(__name__)


def prompt_for_password(username: str) -> str:
    return typer.prompt(
        f"Please enter a password for the user '{username}'",
        hide_input=True,
        confirmation_prompt=True,
    )


class PasswordCache:
    """Prompts for the admin password once and reuses it for the whole batch."""

    def __init__(self, prompt: Callable[[str], str] = prompt_for_password):
        self._prompt = prompt
        self._password: Optional[str] = None

    def get(self, username: str) -> str:
        if self._password is None:
            self._password = self._prompt(username)
        return self._password


class Deployer:
    """Provisions every instance a descriptor asks for."""

    def __init__(
        self,
        seed_manager: Optional[SeedManager] = None,
        password_cache: Optional[PasswordCache] = None,
        templates_dir: Optional[Path] = None,
    ):
        self.seed_manager = seed_manager or SeedManager()
        self.password_cache = password_cache or PasswordCache()
        self.templates_dir = templates_dir

    def deploy(self, descriptor: VmDescriptor) -> List[str]:
        """
        Provision all instances of descriptor in order.

        Returns:
            Names of the deployed instances
        """
        descriptor.validate()
        names = descriptor.instance_names()
        logger.info(f"Deploying {len(names)} instance(s) of {descriptor.hostname}...")

        for name in names:
            if len(names) == 1:
                logger.info(f"Creating single VM: {name}")
            else:
                logger.info(f"Creating VM instance: {name}")

            if descriptor.use_pxe_boot:
                self.deploy_pxe_instance(descriptor, name)
            else:
                self.deploy_cloud_init_instance(descriptor, name)

            VMManager.show_addresses(name)
            logger.info(f"VM {name} deployment complete!")

        return names

    def deploy_pxe_instance(self, descriptor: VmDescriptor, name: str) -> None:
        logger.info("Setting up PXE boot VM...")
        disk = Config.disk_path(name)
        ImageManager.create_empty_disk(disk, descriptor.disk_size)
        VMManager.install_pxe_guest(name, descriptor, disk)

    def deploy_cloud_init_instance(self, descriptor: VmDescriptor, name: str) -> None:
        logger.info("Setting up cloud-init VM...")

        self.seed_manager.ensure_parent_dir()
        seed_dir = self.seed_manager.prepare_instance_dir(name)

        password_hash = None
        if descriptor.admin.prompt_password:
            password = self.password_cache.get(descriptor.admin.name)
            password_hash = cloud_init.hash_password(password)

        bundle = cloud_init.build_bundle(descriptor, name, password_hash)
        self.seed_manager.write_bundle(seed_dir, bundle)
        self.seed_manager.copy_extra_files(descriptor.source_dir, seed_dir)
        bundle.iso_path = self.seed_manager.build_iso(seed_dir)

        template = ImageManager.ensure_base_image(descriptor, self.templates_dir)
        disk = Config.disk_path(name)
        ImageManager.create_guest_disk(template, disk, descriptor.disk_size)

        VMManager.install_cloud_init_guest(name, descriptor, disk, bundle.iso_path)
        VMManager.eject_seed(name)
