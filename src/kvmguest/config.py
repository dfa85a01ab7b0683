import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv


class Config:
    """Loads and manages configuration from environment variables."""

    load_dotenv()

    CONFIG_FILE_NAME = "vm_config.yaml"
    ISO_VOLUME_ID = "cidata"
    LOCAL_CLOUD_INIT_DIR = "cloud-init"

    IMAGES_DIR = Path(os.getenv("KVM_IMAGES_DIR", "/var/lib/libvirt/images"))
    TEMPLATES_DIR = Path(os.getenv("KVM_TEMPLATES_DIR", str(IMAGES_DIR / "templates")))
    CLOUD_INIT_ROOT = Path(os.getenv("KVM_CLOUD_INIT_ROOT", "/cloud-init"))
    CLOUD_INIT_OWNER = os.getenv("KVM_CLOUD_INIT_OWNER", "root")
    CLOUD_INIT_GROUP = os.getenv("KVM_CLOUD_INIT_GROUP", "libvirt-qemu")
    # Octal string, e.g. "750"
    CLOUD_INIT_MODE = int(os.getenv("KVM_CLOUD_INIT_MODE", "750"), 8)

    EJECT_DELAY = int(os.getenv("KVM_EJECT_DELAY", "5"))
    DESTROY_DELAY = int(os.getenv("KVM_DESTROY_DELAY", "2"))

    @staticmethod
    def get_search_dirs() -> List[Path]:
        """
        Build the ordered list of directories searched for guest configs.

        KVM_CONFIG_DIR is read at call time so it can be redirected per run.
        It is always included (a missing directory is reported later), while
        examples/ and guest_configs/ under KVM_GUEST_HOME only when they exist.
        """
        dirs = []
        custom = os.getenv("KVM_CONFIG_DIR")
        if custom:
            dirs.append(Path(custom))

        base = Path(os.getenv("KVM_GUEST_HOME", os.getcwd()))
        for sub in ("examples", "guest_configs"):
            candidate = base / sub
            if candidate.is_dir():
                dirs.append(candidate)
        return dirs

    @classmethod
    def disk_path(cls, vm_name: str) -> Path:
        return cls.IMAGES_DIR / f"{vm_name}.qcow2"

    @classmethod
    def cloud_init_dir(cls, vm_name: str) -> Path:
        return cls.CLOUD_INIT_ROOT / vm_name

    @classmethod
    def legacy_iso_path(cls, vm_name: str) -> Path:
        """Standalone seed ISO left next to the disks by older deployments."""
        return cls.IMAGES_DIR / f"{vm_name}-cloud-init.iso"

    @classmethod
    def template_path(cls, img_source: str) -> Path:
        return cls.TEMPLATES_DIR / os.path.basename(img_source)
