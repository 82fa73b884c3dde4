# model.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Tuple

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ManifestError
from .validate import validate_manifest

# Where commands run and files are copied, unless the manifest says otherwise.
DEFAULT_LOCATION = "/scratch"

# Who commands run as, unless the manifest says otherwise.
DEFAULT_USER = "root"

DEFAULT_MANIFEST = "taskbox.yml"


class MountPath(BaseModel):
    """
    A host path and the container path it is bind-mounted at.

    Written in the manifest as "host:container", or as a single path when
    both sides are the same.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    host_path: str
    container_path: str

    @classmethod
    def parse(cls, value: str) -> MountPath:
        host, sep, container = value.partition(":")
        if not sep:
            return cls(host_path=value, container_path=value)
        return cls(host_path=host, container_path=container)

    def __str__(self) -> str:
        return f"{self.host_path}:{self.container_path}"


class Task(BaseModel):
    """
    One named unit of work.

    Optional overrides (location / user / command_prefix) are None when the
    manifest-level value should be used; see taskbox.environment for the
    helpers that resolve them.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    description: Optional[str] = None
    dependencies: Tuple[str, ...] = ()
    cache: bool = True
    environment: Dict[str, Optional[str]] = Field(default_factory=dict)

    # All four must be relative.
    input_paths: Tuple[str, ...] = ()
    excluded_input_paths: Tuple[str, ...] = ()
    output_paths: Tuple[str, ...] = ()
    output_paths_on_failure: Tuple[str, ...] = ()

    # Mounts, ports and extra arguments all require cache: false.
    mount_paths: Tuple[MountPath, ...] = ()
    mount_readonly: bool = False
    ports: Tuple[str, ...] = ()

    location: Optional[str] = None
    user: Optional[str] = None
    command: str = ""
    command_prefix: Optional[str] = None
    extra_docker_arguments: Tuple[str, ...] = ()

    @field_validator("mount_paths", mode="before")
    @classmethod
    def _parse_mount_paths(cls, value):
        if isinstance(value, (list, tuple)):
            return tuple(MountPath.parse(v) if isinstance(v, str) else v for v in value)
        return value


class Manifest(BaseModel):
    """The whole task file: base image, top-level defaults and named tasks."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    image: str
    default: Optional[str] = None
    location: str = DEFAULT_LOCATION
    user: str = DEFAULT_USER
    command_prefix: str = ""
    tasks: Dict[str, Task] = Field(default_factory=dict)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def _describe_schema_errors(err: pydantic.ValidationError) -> str:
    lines = []
    for e in err.errors():
        loc = ".".join(str(part) for part in e.get("loc", ())) or "<root>"
        lines.append(f"{loc}: {e.get('msg', 'invalid value')}")
    return "; ".join(lines)


def parse_manifest(text: str, *, validate: bool = True) -> Manifest:
    """
    Parse a YAML manifest.

    Unknown fields are rejected. With validate=True (the default) every
    invariant is checked too, so the returned Manifest is ready to schedule.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(message=f"Unable to parse the manifest: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ManifestError(
            message=f"The manifest must be a mapping, got {type(data).__name__}."
        )

    try:
        manifest = Manifest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ManifestError(
            message=f"Invalid manifest: {_describe_schema_errors(e)}"
        ) from e

    if validate:
        validate_manifest(manifest)
    return manifest


def load_manifest(path: str | Path = DEFAULT_MANIFEST, *, validate: bool = True) -> Manifest:
    p = Path(path).expanduser()
    if not p.exists():
        raise ManifestError(message=f"Manifest file not found: {p}")
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(message=f"Unable to read manifest {p}: {e}") from e
    return parse_manifest(text, validate=validate)
