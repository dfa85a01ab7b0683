"""Shared test fixtures and configuration for kvmguest tests."""

import copy
import grp
import os
import pwd
from pathlib import Path
from typing import Any, Dict
from unittest import mock

import pytest
import yaml

from kvmguest.models import VmDescriptor
from kvmguest.seed_manager import SeedManager

VALID_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGq6ZsH8 admin@workstation"

BASE_CONFIG: Dict[str, Any] = {
    "disk_size": "20G",
    "ram": 2048,
    "vcpus": 2,
    "os_variant": "ubuntu24.04",
    "img_source": "https://cloud-images.example.com/noble-server-cloudimg-amd64.img",
    "redownload_img": False,
    "meta-data": {"local-hostname": "web"},
    "network-config": {
        "version": 2,
        "ethernets": {
            "enp1s0": {
                "bridge": "br0",
                "dhcp4": False,
                "addresses": ["192.168.1.50/24"],
                "nameservers": {"addresses": ["192.168.1.1"]},
            },
            "enp2s0": {"network": "default", "dhcp4": True},
        },
    },
    "user-data": {
        "disable_root": True,
        "users": [
            {
                "name": "admin",
                "ssh_authorized_keys": [VALID_KEY],
                "passwd": True,
                "lock_passwd": False,
                "sudo": ["ALL=(ALL) NOPASSWD:ALL"],
            }
        ],
        "packages": ["qemu-guest-agent", "htop"],
        "runcmd": ["systemctl enable --now qemu-guest-agent"],
    },
}


@pytest.fixture
def config_data() -> Dict[str, Any]:
    """A fresh, valid descriptor mapping each test may mutate."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def descriptor(config_data, tmp_path) -> VmDescriptor:
    return VmDescriptor.from_dict(config_data, source_dir=tmp_path)


@pytest.fixture
def write_config(tmp_path):
    """Write a descriptor mapping to <tmp>/<name>/vm_config.yaml."""

    def _write(data: Dict[str, Any], name: str = "web") -> Path:
        config_dir = tmp_path / "configs" / name
        config_dir.mkdir(parents=True, exist_ok=True)
        path = config_dir / "vm_config.yaml"
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


@pytest.fixture
def current_group() -> str:
    return grp.getgrgid(os.getgid()).gr_name


@pytest.fixture
def seed_manager(tmp_path, current_group) -> SeedManager:
    """SeedManager rooted in tmp_path, owned by the test user."""
    return SeedManager(
        root=tmp_path / "seeds",
        group=current_group,
        mode=0o750,
        owner=pwd.getpwuid(os.getuid()).pw_name,
    )


@pytest.fixture
def mock_run():
    """Patch subprocess.run so no hypervisor tool is ever executed."""
    with mock.patch("subprocess.run") as run:
        run.return_value = mock.Mock(returncode=0, stdout="", stderr="")
        yield run
