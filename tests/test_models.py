"""Tests for models module."""

import pytest

from kvmguest.models import (
    AdminUser,
    ConfigurationError,
    NetworkInterface,
    VmDescriptor,
)


def test_from_dict_parses_core_fields(descriptor, tmp_path):
    """Test descriptor fields are read from the YAML mapping."""
    assert descriptor.hostname == "web"
    assert descriptor.disk_size == "20G"
    assert descriptor.ram == 2048
    assert descriptor.vcpus == 2
    assert descriptor.os_variant == "ubuntu24.04"
    assert descriptor.instance_count == 1
    assert descriptor.use_pxe_boot is False
    assert descriptor.network_version == 2
    assert descriptor.disable_root is True
    assert descriptor.source_dir == tmp_path


def test_interfaces_keep_declaration_order(config_data):
    """Test interfaces come out in the order they were declared."""
    ethernets = config_data["network-config"]["ethernets"]
    config_data["network-config"]["ethernets"] = {
        "eth9": {"network": "isolated"},
        **ethernets,
        "eth0": {"bridge": "br9"},
    }

    descriptor = VmDescriptor.from_dict(config_data)

    assert [i.name for i in descriptor.interfaces] == ["eth9", "enp1s0", "enp2s0", "eth0"]


def test_hostname_falls_back_to_top_level(config_data):
    del config_data["meta-data"]
    config_data["hostname"] = "db"

    assert VmDescriptor.from_dict(config_data).hostname == "db"


def test_missing_hostname_raises(config_data):
    del config_data["meta-data"]

    with pytest.raises(ConfigurationError, match="local-hostname"):
        VmDescriptor.from_dict(config_data)


@pytest.mark.parametrize("field", ["disk_size", "ram", "vcpus", "os_variant"])
def test_missing_required_field_raises(config_data, field):
    del config_data[field]

    with pytest.raises(ConfigurationError, match=field):
        VmDescriptor.from_dict(config_data)


def test_non_integer_ram_raises(config_data):
    config_data["ram"] = "lots"

    with pytest.raises(ConfigurationError, match="ram must be an integer"):
        VmDescriptor.from_dict(config_data)


def test_cloud_init_guest_requires_image_source(config_data):
    del config_data["img_source"]

    with pytest.raises(ConfigurationError, match="img_source"):
        VmDescriptor.from_dict(config_data)


def test_pxe_guest_needs_no_image_or_user(config_data):
    del config_data["img_source"]
    del config_data["user-data"]
    config_data["use_pxe_boot"] = True

    descriptor = VmDescriptor.from_dict(config_data)

    assert descriptor.use_pxe_boot is True
    assert descriptor.admin is None


def test_only_first_user_is_honored(config_data):
    config_data["user-data"]["users"].append({"name": "second"})

    descriptor = VmDescriptor.from_dict(config_data)

    assert descriptor.admin.name == "admin"


@pytest.mark.parametrize("value", ["three", -2, 0, None, True, 2.5, "3.0"])
def test_invalid_instance_count_defaults_to_one(config_data, value):
    config_data["instance_count"] = value

    assert VmDescriptor.from_dict(config_data).instance_count == 1


@pytest.mark.parametrize("value, expected", [(3, 3), ("4", 4), (" 2 ", 2)])
def test_whole_instance_count_is_kept(config_data, value, expected):
    config_data["instance_count"] = value

    assert VmDescriptor.from_dict(config_data).instance_count == expected


MALFORMED_FIELDS = [
    (lambda d: d.update({"meta-data": "web"}), "meta-data must be a mapping"),
    (lambda d: d.update({"network-config": ["enp1s0"]}), "network-config must be a mapping"),
    (lambda d: d["network-config"].update({"ethernets": ["enp1s0"]}), "network-config.ethernets must be a mapping"),
    (lambda d: d["network-config"]["ethernets"].update({"enp3s0": "dhcp"}), "network-config.ethernets.enp3s0"),
    (lambda d: d["network-config"].update({"version": "two"}), "network-config.version must be an integer"),
    (lambda d: d.update({"user-data": "admin"}), "user-data must be a mapping"),
    (lambda d: d["user-data"].update({"users": {"name": "admin"}}), "user-data.users must be a list"),
    (lambda d: d["user-data"].update({"users": ["admin"]}), r"user-data.users\[0\] must be a mapping"),
]


@pytest.mark.parametrize("mutate, message", MALFORMED_FIELDS)
def test_malformed_field_raises_configuration_error(config_data, mutate, message):
    mutate(config_data)

    with pytest.raises(ConfigurationError, match=message):
        VmDescriptor.from_dict(config_data)


def test_instance_names_single(descriptor):
    assert descriptor.instance_names() == ["web"]


@pytest.mark.parametrize("count", [2, 3, 7])
def test_instance_names_multiple(config_data, count):
    """Test N>1 yields exactly base-1..base-N."""
    config_data["instance_count"] = count

    names = VmDescriptor.from_dict(config_data).instance_names()

    assert names == [f"web-{i}" for i in range(1, count + 1)]
    assert len(set(names)) == count


class TestNetworkInterface:
    def test_selectors_are_split_from_properties(self):
        iface = NetworkInterface.from_dict("enp1s0", {"bridge": "br0", "network": "default", "dhcp4": True})

        assert iface.bridge == "br0"
        assert iface.network == "default"
        assert iface.guest_config() == {"dhcp4": True}

    def test_bridge_takes_priority(self):
        iface = NetworkInterface.from_dict("enp1s0", {"bridge": "br0", "network": "default"})

        assert iface.virt_install_arg() == "bridge=br0,model=virtio"

    def test_network_mode(self):
        iface = NetworkInterface.from_dict("enp1s0", {"network": "default"})

        assert iface.virt_install_arg() == "network=default,model=virtio"

    def test_no_selector(self):
        iface = NetworkInterface.from_dict("enp1s0", {"dhcp4": True})

        assert iface.virt_install_arg() is None

    def test_empty_interface_body(self):
        iface = NetworkInterface.from_dict("enp1s0", None)

        assert iface.guest_config() == {}


class TestAdminUser:
    def test_defaults(self):
        user = AdminUser.from_dict({"name": "ops"})

        assert user.ssh_key is None
        assert user.prompt_password is False
        assert user.lock_passwd is True
        assert user.sudo == []

    def test_string_sudo_rule_becomes_list(self):
        user = AdminUser.from_dict({"name": "ops", "sudo": "ALL=(ALL) ALL"})

        assert user.sudo == ["ALL=(ALL) ALL"]

    def test_missing_name_raises(self):
        with pytest.raises(ConfigurationError):
            AdminUser.from_dict({"lock_passwd": True})

    @pytest.mark.parametrize(
        "key",
        [
            "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQ test@example.com",
            "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5 test@example.com",
            "ssh-ecdsa AAAAE2VjZHNh test@example.com",
        ],
    )
    def test_recognized_key_prefixes_pass(self, key):
        AdminUser.from_dict({"name": "ops", "ssh_authorized_keys": [key]}).validate("vm_config.yaml")

    @pytest.mark.parametrize("key", ["AAAAB3NzaC1yc2E test", "ecdsa-sha2-nistp256 AAAA", "rsa AAAA"])
    def test_unrecognized_key_prefix_raises(self, key):
        user = AdminUser.from_dict({"name": "ops", "ssh_authorized_keys": [key]})

        with pytest.raises(ConfigurationError, match="Invalid SSH key format"):
            user.validate("vm_config.yaml")

    def test_placeholder_key_raises(self):
        user = AdminUser.from_dict({"name": "ops", "ssh_authorized_keys": ["ssh-ed25519 YOUR_PUBLIC_KEY_HERE"]})

        with pytest.raises(ConfigurationError, match="placeholder"):
            user.validate("vm_config.yaml")


class TestFromYaml:
    def test_loads_file(self, write_config, config_data):
        path = write_config(config_data)

        descriptor = VmDescriptor.from_yaml(path)

        assert descriptor.hostname == "web"
        assert descriptor.source_dir == path.parent

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            VmDescriptor.from_yaml(tmp_path / "vm_config.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "vm_config.yaml"
        path.write_text("ram: [unterminated\n")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            VmDescriptor.from_yaml(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "vm_config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            VmDescriptor.from_yaml(path)

    def test_placeholder_key_rejected_on_load(self, write_config, config_data):
        config_data["user-data"]["users"][0]["ssh_authorized_keys"] = ["ssh-rsa YOUR_PUBLIC_KEY_HERE"]
        path = write_config(config_data)

        with pytest.raises(ConfigurationError, match="placeholder"):
            VmDescriptor.from_yaml(path)
