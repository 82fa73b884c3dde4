# environment.py
from __future__ import annotations

import os
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from .errors import EnvironmentVariableError
from .format import code_str, series

if TYPE_CHECKING:
    from .model import Manifest, Task


def resolve_environment(
    task: Task,
    environ: Optional[Mapping[str, str]] = None,
    *,
    name: Optional[str] = None,
) -> Dict[str, str]:
    """
    Look up every variable the task declares.

    A variable missing from `environ` falls back to its manifest default.
    Variables with neither are collected and reported together.
    """
    source = os.environ if environ is None else environ

    resolved: Dict[str, str] = {}
    missing: List[str] = []

    for variable, default in task.environment.items():
        value = source.get(variable)
        if value is None:
            value = default
        if value is None:
            missing.append(variable)
        else:
            resolved[variable] = value

    if missing:
        who = f"task {code_str(name)}" if name else "the task"
        raise EnvironmentVariableError(
            message=(
                f"The following environment variables are required by {who} "
                f"but are not set: {series([code_str(v) for v in missing])}."
            ),
            task=name,
            missing=missing,
        )
    return resolved


def effective_location(manifest: Manifest, task: Task) -> str:
    return task.location if task.location is not None else manifest.location


def effective_user(manifest: Manifest, task: Task) -> str:
    return task.user if task.user is not None else manifest.user


def effective_command(manifest: Manifest, task: Task) -> str:
    """Command prefix (task override, else manifest) + newline + command."""
    prefix = task.command_prefix if task.command_prefix is not None else manifest.command_prefix
    if prefix and task.command:
        return f"{prefix}\n{task.command}"
    return prefix + task.command
