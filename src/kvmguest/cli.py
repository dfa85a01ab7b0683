#!/usr/bin/env python3
"""
Command-line interface for KVM guest provisioning.

    kvm-guest install              # Pick a guest config from the menu and deploy it
    kvm-guest install -c DIR       # Deploy DIR/vm_config.yaml without the menu
    kvm-guest remove               # Pick a VM and delete it with its storage
    kvm-guest configs              # List discovered guest configs

Guest configs are subdirectories of $KVM_CONFIG_DIR, ./examples and
./guest_configs, each holding a vm_config.yaml.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kvmguest.config import Config
from kvmguest.deployer import Deployer
from kvmguest.models import ConfigurationError, KvmGuestError, VmDescriptor
from kvmguest.vm_manager import VMManager

# Initialize CLI app and console
app = typer.Typer(
    name="kvm-guest",
    help="Provision and remove KVM guests from YAML descriptors",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

CANCEL = "Cancel"


def fail(message: str) -> None:
    """Print an ERROR line to stderr and exit non-zero."""
    err_console.print(f"ERROR: {message}", style="bold red", highlight=False, markup=False, soft_wrap=True)
    raise typer.Exit(1)


def find_config_dirs(search_dirs: Sequence[Path]) -> List[Path]:
    """Every immediate subdirectory of the search dirs, in search order."""
    found = []
    for directory in search_dirs:
        if not directory.is_dir():
            logger.warning(f"Directory {directory} does not exist, skipping...")
            continue
        found.extend(sorted(p for p in directory.iterdir() if p.is_dir()))
    return found


def choose(options: Sequence[str], title: str) -> str:
    """Numbered menu; re-prompts until a valid entry is picked."""
    console.print(title)
    console.print()
    for idx, option in enumerate(options, start=1):
        console.print(f"{idx}) [bold cyan]{escape(option)}[/bold cyan]")

    while True:
        choice = typer.prompt("Enter selection", default="", show_default=False)
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            return options[int(choice) - 1]
        console.print("Invalid selection. Try again.")


def print_getting_started() -> None:
    console.print("\n✅ All VM deployments complete!\n")
    table = Table(title="Getting Started")
    table.add_column("Task", style="cyan")
    table.add_column("Command", style="green")
    table.add_row("Connect to VM console", "virsh console <vm_name>")
    table.add_row("Monitor cloud-init progress", "ssh admin@<vm_ip> 'tail -f /var/log/cloud-init-output.log'")
    table.add_row("Check cloud-init status", "ssh admin@<vm_ip> 'cloud-init status'")
    table.add_row("Get IP address", "virsh domifaddr <vm_name>")
    table.add_row("Get VM details", "virsh dominfo <vm_name>")
    console.print(table)


@app.command("configs")
def list_configs() -> None:
    """List guest configuration directories on the search path."""
    config_dirs = find_config_dirs(Config.get_search_dirs())
    if not config_dirs:
        console.print("No guest configuration directories found.")
        return

    table = Table(title="Guest Configurations")
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="blue")
    table.add_column("vm_config.yaml", style="green")
    for path in config_dirs:
        has_config = (path / Config.CONFIG_FILE_NAME).is_file()
        table.add_row(path.name, str(path), "yes" if has_config else "missing")
    console.print(table)


@app.command("install")
def install(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Guest config directory (skips the selection menu)",
    ),
) -> None:
    """Deploy a guest (or several instances of it) from a config directory."""
    try:
        if config is None:
            config_dirs = find_config_dirs(Config.get_search_dirs())
            if not config_dirs:
                raise ConfigurationError(
                    "No guest configuration directories found. "
                    "Each config should be in its own subdirectory containing vm_config.yaml"
                )
            labels = [f"{path.name}  ({path})" for path in config_dirs]
            picked = choose(labels, "Choose a guest config to deploy...")
            config = config_dirs[labels.index(picked)]
            console.print(f"\nYou selected: [bold cyan]{config.name}[/bold cyan]")

        descriptor = VmDescriptor.from_yaml(config / Config.CONFIG_FILE_NAME)
        Deployer().deploy(descriptor)
    except (KvmGuestError, OSError) as e:
        fail(str(e))

    print_getting_started()


@app.command("remove")
def remove(
    name: Optional[str] = typer.Argument(None, help="VM to remove (menu when omitted)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the typed confirmation"),
) -> None:
    """Remove a VM definition together with its disk and cloud-init files."""
    try:
        if name is None:
            console.print("Fetching list of VMs...")
            domains = VMManager.list_domains()
            if not domains:
                console.print("No VMs found on this system.")
                return
            name = choose(domains + [CANCEL], "Select a VM to remove:")
            if name == CANCEL:
                console.print("Cancelled.")
                return
            console.print(f"\nYou selected: [bold cyan]{name}[/bold cyan]")

        console.print("\n[bold yellow]WARNING: This will permanently delete:[/bold yellow]")
        console.print(f"  - VM definition: {name}")
        console.print(f"  - Disk image: {Config.disk_path(name)}")
        console.print(f"  - Cloud-init files: {Config.cloud_init_dir(name)}/\n")

        if not yes:
            confirm = typer.prompt(f"Type the VM name '{name}' to confirm deletion", default="", show_default=False)
            if confirm != name:
                console.print("Cancelled. VM name does not match.")
                return

        console.print(f"\nRemoving VM: {name}")
        VMManager.remove_guest(name)
    except (KvmGuestError, OSError) as e:
        fail(str(e))

    console.print("\n=== Removal Complete ===")
    console.print(f"VM '{name}' has been removed.\n")
    console.print("Verify removal:")
    console.print("  virsh list --all")
    console.print(f"  ls -lh {Config.IMAGES_DIR}/")


@app.callback()
def main(
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """
    KVM guest provisioning CLI

    Turns vm_config.yaml descriptors into cloud-init seeds and libvirt guests.
    """
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif quiet:
        logging.getLogger().setLevel(logging.WARNING)


if __name__ == "__main__":
    app()
