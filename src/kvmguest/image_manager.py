import logging
from pathlib import Path
from typing import Optional

import requests

from kvmguest.commands import run_command
from kvmguest.config import Config
from kvmguest.models import ProvisioningError, VmDescriptor

logger = logging.getLogger(__name__)


class ImageManager:
    """Handles base image download and guest disk creation."""

    @staticmethod
    def download_image(url: str, destination: Path) -> None:
        """Stream url into destination, replacing any existing file."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")
        logger.info(f"Downloading {url} → {destination}")
        try:
            with requests.get(url, stream=True, timeout=60) as response:
                response.raise_for_status()
                with open(partial, "wb") as image_file:
                    for chunk in response.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            image_file.write(chunk)
        except requests.RequestException as e:
            partial.unlink(missing_ok=True)
            raise ProvisioningError(f"Failed to download base image: {e}") from e
        partial.replace(destination)

    @staticmethod
    def ensure_base_image(descriptor: VmDescriptor, templates_dir: Optional[Path] = None) -> Path:
        """Download the descriptor's base image unless a cached copy can be used."""
        if templates_dir is not None:
            template = Path(templates_dir) / Path(descriptor.img_source).name
        else:
            template = Config.template_path(descriptor.img_source)

        if not template.is_file() or descriptor.redownload_img:
            ImageManager.download_image(descriptor.img_source, template)
        else:
            logger.info(f"Base image {template} already exists. Skipping download.")
        return template

    @staticmethod
    def create_guest_disk(template: Path, disk: Path, size: str) -> None:
        """Copy the base image into a standalone qcow2 disk and grow it."""
        logger.info(f"Creating VM disk image {disk}...")
        run_command(
            ["qemu-img", "convert", "-f", "qcow2", "-O", "qcow2", template, disk],
            "Failed to create disk image",
        )
        run_command(["qemu-img", "resize", disk, size], "Failed to resize disk image")

    @staticmethod
    def create_empty_disk(disk: Path, size: str) -> None:
        logger.info(f"Creating empty VM disk {disk}...")
        run_command(["qemu-img", "create", "-f", "qcow2", disk, size], "Failed to create disk image")
