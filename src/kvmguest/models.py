"""
Data models for KVM guest descriptors.

A descriptor is one vm_config.yaml document. It is read once per deployment,
validated, and then only read from while the batch runs.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

SSH_KEY_PREFIXES = ("ssh-rsa", "ssh-ed25519", "ssh-ecdsa")
SSH_KEY_PLACEHOLDER = "YOUR_PUBLIC_KEY_HERE"

# Hypervisor-side selectors; never written into guest network-config
HOST_NETWORK_KEYS = ("bridge", "network")


class KvmGuestError(Exception):
    """Base class for all fatal provisioning errors."""

    pass


class ConfigurationError(KvmGuestError):
    """Raised when a descriptor is missing, malformed or unsafe."""

    pass


class ProvisioningError(KvmGuestError):
    """Raised when a delegated command or download fails."""

    pass


class PermissionCheckError(KvmGuestError):
    """Raised when a cloud-init directory has the wrong mode or group."""

    pass


@dataclass(frozen=True)
class NetworkInterface:
    """One entry under network-config.ethernets."""

    name: str
    bridge: Optional[str] = None
    network: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Optional[Dict[str, Any]]) -> "NetworkInterface":
        data = dict(_mapping(data, f"network-config.ethernets.{name}"))
        bridge = data.pop("bridge", None)
        network = data.pop("network", None)
        return cls(
            name=name,
            bridge=str(bridge) if bridge is not None else None,
            network=str(network) if network is not None else None,
            properties=data,
        )

    def guest_config(self) -> Dict[str, Any]:
        """Properties visible to the guest, without host-side selectors."""
        return {k: v for k, v in self.properties.items() if k not in HOST_NETWORK_KEYS}

    def virt_install_arg(self) -> Optional[str]:
        """Value for virt-install --network; bridge takes priority."""
        if self.bridge:
            return f"bridge={self.bridge},model=virtio"
        if self.network:
            return f"network={self.network},model=virtio"
        return None


@dataclass(frozen=True)
class AdminUser:
    """The single admin user created by cloud-init."""

    name: str
    ssh_key: Optional[str] = None
    prompt_password: bool = False
    lock_passwd: bool = True
    sudo: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdminUser":
        name = data.get("name")
        if not name:
            raise ConfigurationError("user-data.users[0].name is required")

        keys = data.get("ssh_authorized_keys") or []
        if isinstance(keys, str):
            keys = [keys]

        sudo = data.get("sudo") or []
        if isinstance(sudo, str):
            sudo = [sudo]

        return cls(
            name=str(name),
            ssh_key=str(keys[0]).strip() if keys else None,
            prompt_password=_as_bool(data.get("passwd", False)),
            lock_passwd=_as_bool(data.get("lock_passwd", True)),
            sudo=[str(rule) for rule in sudo],
        )

    def validate(self, source: str) -> None:
        """Reject SSH keys that are malformed or still the placeholder."""
        if self.ssh_key is None:
            return
        if not self.ssh_key.startswith(SSH_KEY_PREFIXES):
            raise ConfigurationError(
                f"Invalid SSH key format in {source}. "
                "Please update ssh_authorized_keys with your public key."
            )
        if SSH_KEY_PLACEHOLDER in self.ssh_key:
            raise ConfigurationError(
                f"Please replace the placeholder SSH key with your actual public key in {source} "
                "(find it in ~/.ssh/id_ed25519.pub or ~/.ssh/id_rsa.pub)"
            )


@dataclass(frozen=True)
class VmDescriptor:
    """A parsed vm_config.yaml."""

    hostname: str
    disk_size: str
    ram: int
    vcpus: int
    os_variant: str
    img_source: Optional[str] = None
    redownload_img: bool = False
    instance_count: int = 1
    use_pxe_boot: bool = False
    pxe_boot_interface: Optional[str] = None
    network_version: int = 2
    interfaces: List[NetworkInterface] = field(default_factory=list)
    admin: Optional[AdminUser] = None
    disable_root: Optional[bool] = None
    packages: List[Any] = field(default_factory=list)
    runcmd: List[Any] = field(default_factory=list)
    write_files: Optional[List[Dict[str, Any]]] = None
    source_dir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_yaml(cls, config_path: Path) -> "VmDescriptor":
        """Load and validate a descriptor from a YAML file."""
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigurationError(f"Configuration file {config_path} not found!")

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path} does not contain a YAML mapping")

        descriptor = cls.from_dict(data, source_dir=config_path.parent)
        descriptor.validate(str(config_path))
        return descriptor

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source_dir: Optional[Path] = None) -> "VmDescriptor":
        meta = _mapping(data.get("meta-data"), "meta-data")
        hostname = meta.get("local-hostname") or data.get("hostname")
        if not hostname:
            raise ConfigurationError("meta-data.local-hostname is required")

        net = _mapping(data.get("network-config"), "network-config")
        ethernets = _mapping(net.get("ethernets"), "network-config.ethernets")
        interfaces = [NetworkInterface.from_dict(str(name), props) for name, props in ethernets.items()]

        user_data = _mapping(data.get("user-data"), "user-data")
        users = user_data.get("users") or []
        if not isinstance(users, list):
            raise ConfigurationError("user-data.users must be a list")
        if len(users) > 1:
            logger.warning(f"Only the first of {len(users)} users is used")
        for i, entry in enumerate(users):
            _mapping(entry, f"user-data.users[{i}]")
        admin = AdminUser.from_dict(users[0]) if users else None

        is_pxe = _as_bool(data.get("use_pxe_boot", False))
        img_source = data.get("img_source")
        if not is_pxe and not img_source:
            raise ConfigurationError("img_source is required for cloud-init guests")
        if not is_pxe and admin is None:
            raise ConfigurationError("user-data.users must define an admin user")

        return cls(
            hostname=str(hostname),
            disk_size=str(_required(data, "disk_size")),
            ram=_required_int(data, "ram"),
            vcpus=_required_int(data, "vcpus"),
            os_variant=str(_required(data, "os_variant")),
            img_source=img_source,
            redownload_img=_as_bool(data.get("redownload_img", False)),
            instance_count=_parse_instance_count(data.get("instance_count", 1)),
            use_pxe_boot=is_pxe,
            pxe_boot_interface=data.get("pxe_boot_interface"),
            network_version=_as_int(net.get("version", 2), "network-config.version"),
            interfaces=interfaces,
            admin=admin,
            disable_root=user_data.get("disable_root"),
            packages=list(user_data.get("packages") or []),
            runcmd=list(user_data.get("runcmd") or []),
            write_files=user_data.get("write_files"),
            source_dir=Path(source_dir) if source_dir else Path.cwd(),
        )

    def validate(self, source: str = "vm_config.yaml") -> None:
        if self.admin is not None:
            self.admin.validate(source)

    def instance_names(self) -> List[str]:
        """Base hostname for a single guest, base-1..base-N otherwise."""
        if self.instance_count == 1:
            return [self.hostname]
        return [f"{self.hostname}-{i}" for i in range(1, self.instance_count + 1)]


@dataclass
class CloudInitBundle:
    """Generated seed files for one guest instance."""

    meta_data: str
    user_data: str
    network_config: str
    iso_path: Optional[Path] = None


def _required(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None:
        raise ConfigurationError(f"{key} is required")
    return value


def _required_int(data: Dict[str, Any], key: str) -> int:
    return _as_int(_required(data, key), key)


def _as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


def _mapping(value: Any, key: str) -> Dict[str, Any]:
    """Treat a missing section as empty; anything but a mapping is an error."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{key} must be a mapping, got {type(value).__name__}")
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_instance_count(value: Any) -> int:
    # Whole numbers only; 2.5 and "3.0" are rejected, not truncated
    if isinstance(value, int) and not isinstance(value, bool):
        count = value
    elif isinstance(value, str) and value.strip().isdecimal():
        count = int(value.strip())
    else:
        count = 0
    if count < 1:
        logger.warning(f"Invalid instance_count value {value!r}. Defaulting to 1.")
        return 1
    return count
