"""Provision and tear down KVM guests from YAML descriptors and cloud-init."""

__version__ = "1.0.0"
