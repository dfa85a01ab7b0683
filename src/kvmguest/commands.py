"""Thin wrappers around subprocess for the delegated hypervisor tools."""

import logging
import shlex
import subprocess
from typing import List, Optional, Sequence

from kvmguest.models import ProvisioningError

logger = logging.getLogger(__name__)


def _display(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in args)


def run_command(args: Sequence[str], error_message: str) -> None:
    """
    Run an external command, aborting the deployment if it fails.

    Raises:
        ProvisioningError: On non-zero exit or when the binary is missing
    """
    cmd: List[str] = [str(a) for a in args]
    logger.debug(f"Running: {_display(cmd)}")
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        logger.error(f"{cmd[0]} exited with status {e.returncode}")
        raise ProvisioningError(error_message) from e
    except FileNotFoundError as e:
        raise ProvisioningError(f"{error_message} ({cmd[0]} not found)") from e


def try_command(args: Sequence[str], warning: str) -> bool:
    """Run a best-effort command. Failure is logged, never raised."""
    cmd = [str(a) for a in args]
    logger.debug(f"Running: {_display(cmd)}")
    try:
        subprocess.run(cmd, check=True)
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        logger.warning(warning)
        return False


def capture_command(args: Sequence[str]) -> Optional[str]:
    """Run a query command and return its stdout, or None if it failed."""
    cmd = [str(a) for a in args]
    logger.debug(f"Running: {_display(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        logger.debug(f"{cmd[0]} failed: {(e.stderr or '').strip()}")
        return None
    except FileNotFoundError:
        logger.debug(f"{cmd[0]} not found")
        return None
    return result.stdout
