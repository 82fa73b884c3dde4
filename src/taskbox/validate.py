# validate.py
from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from .dag import check_cycles, check_dependencies
from .errors import ValidationError
from .format import code_str

if TYPE_CHECKING:
    from .model import Manifest, Task


def _relative_paths_check(name: str, field_name: str, paths) -> None:
    for path in paths:
        if PurePosixPath(path).is_absolute():
            raise ValidationError(
                message=(
                    f"Task {code_str(name)} has an absolute path in "
                    f"{code_str(field_name)}: {code_str(path)}."
                ),
                task=name,
                field_name=field_name,
                value=path,
            )
        if ".." in PurePosixPath(path).parts:
            raise ValidationError(
                message=(
                    f"Task {code_str(name)} has a path that leaves the project in "
                    f"{code_str(field_name)}: {code_str(path)}."
                ),
                task=name,
                field_name=field_name,
                value=path,
            )


def _cache_conflict(name: str, field_name: str, what: str) -> ValidationError:
    return ValidationError(
        message=(
            f"Task {code_str(name)} {what} but does not disable caching. "
            f"To fix this, set {code_str('cache: false')} for this task."
        ),
        task=name,
        field_name=field_name,
        value="cache: true",
    )


def validate_task(name: str, task: Task) -> None:
    """
    Check one task. Checks run in a fixed order and the first violation is
    raised as a ValidationError naming the task, the field and the value.
    """
    for variable in task.environment:
        if "=" in variable:
            raise ValidationError(
                message=(
                    f"Environment variable {code_str(variable)} of task "
                    f"{code_str(name)} contains {code_str('=')}."
                ),
                task=name,
                field_name="environment",
                value=variable,
            )

    _relative_paths_check(name, "input_paths", task.input_paths)
    _relative_paths_check(name, "excluded_input_paths", task.excluded_input_paths)
    _relative_paths_check(name, "output_paths", task.output_paths)
    _relative_paths_check(name, "output_paths_on_failure", task.output_paths_on_failure)

    # Commas would break the --mount type=bind,source=...,target=... syntax.
    for mount in task.mount_paths:
        if "," in mount.host_path or "," in mount.container_path:
            raise ValidationError(
                message=(
                    f"Mount path {code_str(mount)} of task {code_str(name)} "
                    f"has a {code_str(',')}."
                ),
                task=name,
                field_name="mount_paths",
                value=str(mount),
            )

    if task.location is not None and not PurePosixPath(task.location).is_absolute():
        raise ValidationError(
            message=(
                f"Task {code_str(name)} has a relative {code_str('location')}: "
                f"{code_str(task.location)}."
            ),
            task=name,
            field_name="location",
            value=task.location,
        )

    if task.mount_paths and task.cache:
        raise _cache_conflict(name, "mount_paths", f"has {code_str('mount_paths')}")

    if task.ports and task.cache:
        raise _cache_conflict(name, "ports", "exposes ports")

    if task.extra_docker_arguments and task.cache:
        raise _cache_conflict(name, "extra_docker_arguments", "has extra Docker arguments")


def validate_manifest(manifest: Manifest) -> None:
    """
    Check everything that can be checked without running anything:

      1. dependencies and the default task name exist (one aggregated report)
      2. the dependency graph is acyclic
      3. the manifest location is absolute
      4. every task passes validate_task
    """
    check_dependencies(manifest)
    check_cycles(manifest)

    if not PurePosixPath(manifest.location).is_absolute():
        raise ValidationError(
            message=(
                f"The manifest has a relative {code_str('location')}: "
                f"{code_str(manifest.location)}."
            ),
            field_name="location",
            value=manifest.location,
        )

    for name, task in manifest.tasks.items():
        validate_task(name, task)
