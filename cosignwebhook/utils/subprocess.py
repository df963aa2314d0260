"""Subprocess utilities with timeout support."""

import os
import subprocess
import shutil
from dataclasses import dataclass
from typing import Dict, List, Optional

from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Result of a command execution."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        """Check if command was successful."""
        return self.returncode == 0 and not self.timed_out


def run_command(
    cmd: List[str],
    timeout: Optional[float] = None,
    extra_env: Optional[Dict[str, str]] = None,
    redact: Optional[List[str]] = None,
) -> CommandResult:
    """
    Run a command with optional timeout.

    Args:
        cmd: Command to run as a list of arguments
        timeout: Timeout in seconds (None for no timeout)
        extra_env: Variables added on top of the current environment
        redact: Names from extra_env whose values must never be logged

    Returns:
        CommandResult with stdout, stderr, and return code
    """
    env = None
    if extra_env:
        env = dict(os.environ)
        env.update(extra_env)
        shown = {
            k: ("<redacted>" if k in (redact or []) else v)
            for k, v in extra_env.items()
        }
        logger.debug(f"Running command: {cmd} env={shown}")
    else:
        logger.debug(f"Running command: {cmd}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"Command timed out after {timeout}s: {cmd[0]}")
        return CommandResult(
            returncode=-1,
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
            timed_out=True,
        )
    except FileNotFoundError as e:
        logger.error(f"Command not found: {cmd[0]}")
        return CommandResult(
            returncode=127,
            stdout="",
            stderr=str(e),
        )
    except OSError as e:
        logger.error(f"Can't run {cmd[0]}: {e}")
        return CommandResult(
            returncode=126,
            stdout="",
            stderr=str(e),
        )


def check_prerequisites(tools: List[str]) -> List[str]:
    """Executables from tools that are not on PATH."""
    return [tool for tool in tools if shutil.which(tool) is None]
