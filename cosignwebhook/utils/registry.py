"""Container image reference parsing."""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN_RE = re.compile(rf"^{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?$")
_PATH_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(
    r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$"
)


class InvalidReferenceError(ValueError):
    """Raised when an image or repository reference cannot be parsed."""


@dataclass(frozen=True)
class Repository:
    """A registry host plus repository path, e.g. ghcr.io/org/app."""
    registry: str
    path: str

    def __str__(self) -> str:
        return f"{self.registry}/{self.path}"


@dataclass(frozen=True)
class ImageReference:
    """A parsed image reference: repository plus tag and/or digest."""
    repository: Repository
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def registry(self) -> str:
        return self.repository.registry

    def __str__(self) -> str:
        name = str(self.repository)
        if self.digest:
            return f"{name}@{self.digest}"
        return f"{name}:{self.tag or DEFAULT_TAG}"


def extract_registry(image: str) -> Tuple[str, str]:
    """
    Split a reference into registry host and the remainder.

    Args:
        image: Image or repository reference

    Returns:
        Tuple of (registry, remainder)
    """
    parts = image.split("/", 1)
    if len(parts) == 1:
        return DEFAULT_REGISTRY, image

    # Check if first part looks like a registry
    first = parts[0]
    if "." in first or ":" in first or first == "localhost":
        if first == "docker.io":
            first = DEFAULT_REGISTRY
        return first, parts[1]

    return DEFAULT_REGISTRY, image


def parse_repository(value: str) -> Repository:
    """
    Parse a repository reference without tag or digest.

    Raises:
        InvalidReferenceError: if the value is empty or malformed
    """
    if not value:
        raise InvalidReferenceError("empty repository reference")

    registry, path = extract_registry(value)
    if not _DOMAIN_RE.match(registry):
        raise InvalidReferenceError(f"invalid registry {registry!r} in {value!r}")

    components = path.split("/")
    for component in components:
        if not _PATH_COMPONENT_RE.match(component):
            raise InvalidReferenceError(
                f"invalid repository component {component!r} in {value!r}"
            )

    # Official images live under library/ on Docker Hub
    if registry == DEFAULT_REGISTRY and len(components) == 1:
        path = f"library/{path}"

    if len(path) > 255:
        raise InvalidReferenceError(f"repository name too long: {value!r}")

    return Repository(registry=registry, path=path)


def parse_image_reference(image: str) -> ImageReference:
    """
    Parse an image reference such as ``ghcr.io/org/app:v1`` or
    ``nginx@sha256:...``. A reference without tag or digest gets ``latest``.

    Raises:
        InvalidReferenceError: if the reference is empty or malformed
    """
    if not image or image.strip() != image:
        raise InvalidReferenceError(f"invalid image reference {image!r}")

    name, digest = image, None
    if "@" in image:
        name, digest = image.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise InvalidReferenceError(f"invalid digest {digest!r} in {image!r}")

    tag = None
    last_slash = name.rfind("/")
    last_colon = name.rfind(":")
    if last_colon > last_slash:
        name, tag = name[:last_colon], name[last_colon + 1:]
        if not _TAG_RE.match(tag):
            raise InvalidReferenceError(f"invalid tag {tag!r} in {image!r}")

    repository = parse_repository(name)

    if tag is None and digest is None:
        tag = DEFAULT_TAG

    logger.debug(f"Parsed image reference {image!r} as {repository} tag={tag} digest={digest}")
    return ImageReference(repository=repository, tag=tag, digest=digest)
