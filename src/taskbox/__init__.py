from .dag import compute_schedule
from .errors import (
    ContainerRuntimeError,
    CycleError,
    DependencyError,
    EnvironmentVariableError,
    ManifestError,
    TaskboxError,
    TaskInterruptedError,
    ValidationError,
)
from .model import Manifest, MountPath, Task, load_manifest, parse_manifest
from .runner import RunResult, TaskRunner, run_tasks
from .settings import Settings

__all__ = [
    "compute_schedule",
    "ContainerRuntimeError",
    "CycleError",
    "DependencyError",
    "EnvironmentVariableError",
    "ManifestError",
    "TaskboxError",
    "TaskInterruptedError",
    "ValidationError",
    "Manifest",
    "MountPath",
    "Task",
    "load_manifest",
    "parse_manifest",
    "RunResult",
    "TaskRunner",
    "run_tasks",
    "Settings",
]
