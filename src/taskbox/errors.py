# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(eq=False)
class TaskboxError(Exception):
    """
    Base for every error taskbox reports to the user.

    Each subclass carries the structured context needed to:
      - print a clean CLI message (str(err))
      - let callers react to the failure without parsing text
    """
    message: str

    kind = "error"

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class ManifestError(TaskboxError):
    """The manifest document is unreadable or does not match the schema."""
    kind = "manifest"


@dataclass(eq=False)
class ValidationError(TaskboxError):
    """A single task (or manifest) field violates an invariant."""
    task: Optional[str] = None
    field_name: Optional[str] = None
    value: Optional[str] = None

    kind = "validation"


@dataclass(eq=False)
class DependencyError(TaskboxError):
    """
    Aggregated report of dependencies that name nonexistent tasks.

    violations: task name -> missing dependency names (every task, not just the first)
    invalid_default: the default task name when it does not exist
    """
    violations: Dict[str, List[str]] = field(default_factory=dict)
    invalid_default: Optional[str] = None

    kind = "dependency"


@dataclass(eq=False)
class CycleError(TaskboxError):
    """The dependency graph has a cycle; `cycle` lists it in dependency order."""
    cycle: List[str] = field(default_factory=list)

    kind = "cycle"


@dataclass(eq=False)
class EnvironmentVariableError(TaskboxError):
    """Required environment variables are missing and have no default."""
    task: Optional[str] = None
    missing: List[str] = field(default_factory=list)

    kind = "environment"


@dataclass(eq=False)
class ContainerRuntimeError(TaskboxError):
    """
    A container runtime operation failed.

    user_command is True when the task's own command exited non-zero, as
    opposed to the runtime itself misbehaving.
    """
    operation: str = ""
    task: Optional[str] = None
    user_command: bool = False
    exit_code: Optional[int] = None
    cause: Optional[BaseException] = None

    kind = "runtime"


@dataclass(eq=False)
class TaskInterruptedError(TaskboxError):
    """The user asked to stop. Never treated as a task failure."""
    message: str = "Interrupted."
    task: Optional[str] = None

    kind = "interrupted"
