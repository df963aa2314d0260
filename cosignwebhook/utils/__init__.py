"""Utility modules for the webhook package."""

from .logging import (
    get_logger,
    setup_logging,
    LogLevel,
    is_verbose,
)
from .subprocess import run_command, CommandResult, check_prerequisites
from .registry import (
    ImageReference,
    Repository,
    InvalidReferenceError,
    parse_image_reference,
    parse_repository,
)
from .deadline import Deadline

__all__ = [
    "get_logger",
    "setup_logging",
    "LogLevel",
    "is_verbose",
    "run_command",
    "CommandResult",
    "check_prerequisites",
    "ImageReference",
    "Repository",
    "InvalidReferenceError",
    "parse_image_reference",
    "parse_repository",
    "Deadline",
]
