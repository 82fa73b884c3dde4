"""Console output formatting utilities for taskbox."""

from __future__ import annotations

import sys
from typing import Mapping, Optional, Sequence


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show docker commands and stack traces
        """
        self.debug = debug

    def print_run_started(self, manifest: str, image: str, schedule: Sequence[str]) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Manifest: {manifest}")
        print(f"Base image: {image}")
        print(f"Schedule: {' -> '.join(schedule) if schedule else '(nothing to do)'}")
        print()

    def print_task_start(self, name: str) -> None:
        print(f"\nTASK STARTED: {name}")

    def print_cache_hit(self, name: str, image: str) -> None:
        print(f"CACHE: hit ({_short_tag(image)})")

    def print_cache_miss(self, name: str, reason: str = "") -> None:
        print(f"CACHE: miss{f' ({reason})' if reason else ''}")

    def print_task_skipped(self, name: str, reason: str) -> None:
        print(f"STATUS: skipped ({reason})")

    def print_task_built(self, name: str, image: str | None) -> None:
        if image:
            print(f"STATUS: success ({_short_tag(image)})")
        else:
            print("STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print task failure message.

        Args:
            name: Task name
            reason: Failure reason/error message
            exit_code: Optional exit code of the task's command
            hint: Optional hint for user
        """
        print(f"TASK FAILED: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if hint:
            print(f"Hint: {hint}")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            print(f"Error: {error_line}")

    def print_results(self, results: Mapping[str, str], image: Optional[str] = None) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for task, status in results.items():
            print(f"  {task}: {status.upper()}")
        if image:
            print(f"\nImage: {image}")

    def print_task_list(
        self,
        tasks: Mapping[str, Optional[str]],
        default: Optional[str] = None,
    ) -> None:
        """Print task names with their descriptions, marking the default."""
        if not tasks:
            print("No tasks.")
            return
        width = max(len(name) for name in tasks)
        for name, description in tasks.items():
            marker = " (default)" if name == default else ""
            line = f"  {name.ljust(width)}"
            if description:
                line += f"  {description}"
            print(line + marker)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


def _short_tag(image: str) -> str:
    repo, sep, tag = image.rpartition(":")
    if sep and len(tag) > 17:
        return f"{repo}:{tag[:17]}..."
    return image


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
