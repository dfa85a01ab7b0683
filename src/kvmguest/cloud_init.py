"""
Translate a VmDescriptor into cloud-init seed files and virt-install flags.

Everything here is pure text generation; writing files and running tools
happens in seed_manager and vm_manager.
"""

from typing import Any, Dict, List, Optional

import bcrypt
import yaml

from kvmguest.models import CloudInitBundle, ConfigurationError, VmDescriptor

CLOUD_CONFIG_HEADER = "#cloud-config\n"
ADMIN_GROUPS = "sudo"
ADMIN_SHELL = "/bin/bash"
BCRYPT_MAX_BYTES = 72


def _dump(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, width=4096)


def hash_password(plaintext: str) -> str:
    """Generate a salted bcrypt hash suitable for the cloud-init passwd field."""
    encoded = plaintext.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ConfigurationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    hashed = bcrypt.hashpw(encoded, bcrypt.gensalt())
    return hashed.decode("utf-8")


def render_meta_data(instance_name: str) -> str:
    return f"instance-id: {instance_name}\nlocal-hostname: {instance_name}\n"


def render_network_config(descriptor: VmDescriptor) -> str:
    """Network config v1/v2 document with host-side selectors stripped."""
    ethernets = {iface.name: iface.guest_config() for iface in descriptor.interfaces}
    return _dump({"version": descriptor.network_version, "ethernets": ethernets})


def render_user_data(descriptor: VmDescriptor, password_hash: Optional[str] = None) -> str:
    """
    Build the #cloud-config user-data document.

    Args:
        descriptor: Parsed guest descriptor (must define an admin user)
        password_hash: Pre-hashed password, written as the admin's passwd

    Returns:
        user-data text including the #cloud-config header
    """
    admin = descriptor.admin
    if admin is None:
        raise ValueError("user-data requires an admin user")

    user: Dict[str, Any] = {"name": admin.name}
    if admin.ssh_key:
        user["ssh_authorized_keys"] = [admin.ssh_key]
    user["groups"] = ADMIN_GROUPS
    user["shell"] = ADMIN_SHELL
    user["lock_passwd"] = admin.lock_passwd
    if password_hash:
        user["passwd"] = password_hash
    if admin.sudo:
        user["sudo"] = list(admin.sudo)

    document: Dict[str, Any] = {"users": [user]}
    if descriptor.disable_root is not None:
        document["disable_root"] = descriptor.disable_root
    if descriptor.write_files:
        document["write_files"] = descriptor.write_files
    document["packages"] = list(descriptor.packages)
    document["runcmd"] = list(descriptor.runcmd)

    return CLOUD_CONFIG_HEADER + _dump(document)


def network_args(descriptor: VmDescriptor) -> List[str]:
    """One --network flag per interface, in declaration order."""
    args = []
    for iface in descriptor.interfaces:
        value = iface.virt_install_arg()
        if value:
            args.extend(["--network", value])
    return args


def build_bundle(
    descriptor: VmDescriptor, instance_name: str, password_hash: Optional[str] = None
) -> CloudInitBundle:
    return CloudInitBundle(
        meta_data=render_meta_data(instance_name),
        user_data=render_user_data(descriptor, password_hash),
        network_config=render_network_config(descriptor),
    )
