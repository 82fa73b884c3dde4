# cli.py
from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path

import click

from .dag import compute_schedule
from .errors import TaskboxError, TaskInterruptedError
from .model import load_manifest
from .runner import STATUS_FAILED, TaskRunner
from .runtime.docker import DockerRuntime
from .settings import Settings
from .ui.console import Console, get_console, set_console

ERROR_TITLES = {
    "manifest": "Invalid manifest",
    "validation": "Invalid task",
    "dependency": "Invalid dependencies",
    "cycle": "Cyclic dependencies",
    "environment": "Missing environment variables",
    "runtime": "Container runtime failure",
    "error": "Error",
}


def _settings(file: str | None, **overrides) -> Settings:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        get_console().print_error("Invalid configuration", str(e))
        sys.exit(1)
    return settings.with_overrides(manifest_path=file, **overrides)


def _report(ctx: click.Context, e: TaskboxError) -> None:
    console = get_console()
    console.print_error(ERROR_TITLES.get(e.kind, "Error"), str(e))
    if ctx.obj.get("debug", False):
        console.print_exception(e)


def _install_signal_handlers(interrupted: threading.Event) -> None:
    def handler(signum, frame):
        if interrupted.is_set():
            # second signal: stop waiting for cleanup
            raise KeyboardInterrupt
        get_console().print_info("\nInterrupting... (press again to force)")
        interrupted.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show docker commands and stack traces)",
)
@click.pass_context
def cli(ctx, debug):
    """taskbox: run tasks in containers, caching every step as an image."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


file_option = click.option(
    "--file",
    "-f",
    default=None,
    help="Manifest path (defaults to $TASKBOX_FILE or taskbox.yml)",
)


@cli.command()
@click.argument("tasks", nargs=-1)
@file_option
@click.option("--repo", default=None, help="Docker repository for cached images")
@click.option("--docker-cli", default=None, help="Docker-compatible CLI to invoke")
@click.option("--force", "forced", multiple=True, help="Run this task even if it is cached (repeatable)")
@click.option("--force-all", is_flag=True, default=False, help="Ignore cached images for every task")
@click.option("--read-local-cache/--no-read-local-cache", default=None)
@click.option("--write-local-cache/--no-write-local-cache", default=None)
@click.option("--read-remote-cache/--no-read-remote-cache", default=None)
@click.option("--write-remote-cache/--no-write-remote-cache", default=None)
@click.option("--shell", is_flag=True, default=False, help="Open an interactive shell in the final image")
@click.pass_context
def run(
    ctx,
    tasks,
    file,
    repo,
    docker_cli,
    forced,
    force_all,
    read_local_cache,
    write_local_cache,
    read_remote_cache,
    write_remote_cache,
    shell,
):
    """Run TASKS (or the default task) and their dependencies."""
    console = get_console()
    settings = _settings(
        file,
        docker_repo=repo,
        docker_cli=docker_cli,
        read_local_cache=read_local_cache,
        write_local_cache=write_local_cache,
        read_remote_cache=read_remote_cache,
        write_remote_cache=write_remote_cache,
    )

    runner = None
    try:
        manifest = load_manifest(settings.manifest_path)
        schedule = compute_schedule(manifest, tasks)

        unknown_forced = [name for name in forced if name not in manifest.tasks]
        if unknown_forced:
            console.print_error(
                "Unknown task",
                f"Cannot force tasks that do not exist: {', '.join(unknown_forced)}",
            )
            sys.exit(1)

        console.print_run_started(settings.manifest_path, manifest.image, schedule)

        interrupted = threading.Event()
        _install_signal_handlers(interrupted)

        runner = TaskRunner(
            manifest,
            DockerRuntime(settings.docker_cli, interrupted=interrupted),
            settings=settings,
            source_dir=Path(settings.manifest_path).parent,
            interrupted=interrupted,
            forced=manifest.tasks if force_all else forced,
        )
        result = runner.run(schedule, shell=shell)
        console.print_results(result.statuses, result.image)

    except (TaskInterruptedError, KeyboardInterrupt):
        if runner is not None:
            console.print_results(runner.statuses)
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except TaskboxError as e:
        if runner is not None:
            console.print_results(runner.statuses)
        # task failures were already reported as they happened
        if runner is None or STATUS_FAILED not in runner.statuses.values():
            _report(ctx, e)
        sys.exit(1)


@cli.command(name="list")
@file_option
@click.pass_context
def list_tasks(ctx, file):
    """List the tasks in the manifest."""
    console = get_console()
    settings = _settings(file)
    try:
        manifest = load_manifest(settings.manifest_path)
    except TaskboxError as e:
        _report(ctx, e)
        sys.exit(1)
    console.print_task_list(
        {name: task.description for name, task in manifest.tasks.items()},
        default=manifest.default,
    )


@cli.command()
@file_option
@click.pass_context
def check(ctx, file):
    """Validate the manifest without running anything."""
    console = get_console()
    settings = _settings(file)
    try:
        manifest = load_manifest(settings.manifest_path)
        schedule = compute_schedule(manifest)
    except TaskboxError as e:
        _report(ctx, e)
        sys.exit(1)
    console.print_info(f"{settings.manifest_path}: OK ({len(manifest.tasks)} tasks)")
    console.print_info(f"Default schedule: {' -> '.join(schedule) if schedule else '(nothing to do)'}")


@cli.command()
@click.argument("tasks", nargs=-1)
@file_option
@click.pass_context
def plan(ctx, tasks, file):
    """Print the order TASKS (or the default task) would run in."""
    console = get_console()
    settings = _settings(file)
    try:
        manifest = load_manifest(settings.manifest_path)
        schedule = compute_schedule(manifest, tasks)
    except TaskboxError as e:
        _report(ctx, e)
        sys.exit(1)
    for index, name in enumerate(schedule, start=1):
        console.print_info(f"{index}. {name}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
