# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .model import DEFAULT_MANIFEST

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_flag(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean (true/false), got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Run-wide knobs. The core takes these explicitly; nothing reads globals."""

    manifest_path: str = DEFAULT_MANIFEST
    docker_cli: str = "docker"
    docker_repo: str = "taskbox"
    read_local_cache: bool = True
    write_local_cache: bool = True
    read_remote_cache: bool = False
    write_remote_cache: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            manifest_path=env.get("TASKBOX_FILE", DEFAULT_MANIFEST),
            docker_cli=env.get("TASKBOX_DOCKER_CLI", "docker"),
            docker_repo=env.get("TASKBOX_DOCKER_REPO", "taskbox"),
            read_local_cache=_env_flag(env, "TASKBOX_READ_LOCAL_CACHE", True),
            write_local_cache=_env_flag(env, "TASKBOX_WRITE_LOCAL_CACHE", True),
            read_remote_cache=_env_flag(env, "TASKBOX_READ_REMOTE_CACHE", False),
            write_remote_cache=_env_flag(env, "TASKBOX_WRITE_REMOTE_CACHE", False),
        )

    def with_overrides(self, **overrides) -> Settings:
        """Apply CLI overrides; None means "not given"."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
