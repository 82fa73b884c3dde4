# runtime/docker.py
from __future__ import annotations

import shlex
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path, PurePosixPath
from typing import List, Mapping, Optional, Sequence, Tuple

from ..errors import ContainerRuntimeError, TaskInterruptedError
from ..model import MountPath
from ..ui.console import get_console
from .base import ContainerRuntime

# How often a running docker command checks for an interrupt.
POLL_SECONDS = 0.1

DOCKER_HINT = "Install Docker and ensure the daemon is running."


# ---------------------------------------------------------------------
# Argument building
# ---------------------------------------------------------------------

def container_args(
    *,
    source_dir: Path,
    environment: Mapping[str, str],
    location: str,
    mount_paths: Sequence[MountPath],
    mount_readonly: bool,
    ports: Sequence[str],
    extra_args: Sequence[str],
) -> List[str]:
    """Arguments shared by `docker container create` and `docker container run`."""
    # --init: tini as PID 1 reaps zombies and forwards SIGINT/SIGTERM.
    # --user root: /bin/su must start as root to switch users without a password.
    args = ["--init", "--user", "root"]

    for variable, value in sorted(environment.items()):
        args.extend(["--env", f"{variable}={value}"])

    args.extend(["--workdir", location])

    # Docker wants absolute host paths for bind mounts.
    host_root = Path(source_dir).absolute()
    for mount in mount_paths:
        option = (
            f"type=bind,source={host_root / mount.host_path},"
            f"target={PurePosixPath(location) / mount.container_path}"
        )
        if mount_readonly:
            option += ",readonly"
        args.extend(["--mount", option])

    for port in ports:
        args.extend(["--publish", port])

    args.extend(extra_args)
    return args


def _move_into_place(source: Path, destination: Path) -> None:
    """Directories are merged into the destination; files and symlinks replace it."""
    if source.is_dir() and not source.is_symlink():
        if destination.is_symlink() or destination.is_file():
            destination.unlink()
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
        return

    if destination.is_dir() and not destination.is_symlink():
        shutil.rmtree(destination)
    elif destination.is_symlink() or destination.exists():
        destination.unlink()
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(destination))


# ---------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------

class DockerRuntime(ContainerRuntime):
    """ContainerRuntime backed by the docker CLI."""

    def __init__(self, docker_cli: str = "docker", interrupted: Optional[threading.Event] = None):
        self.docker_cli = docker_cli
        self.interrupted = interrupted or threading.Event()

    def _run(
        self,
        args: Sequence[str],
        *,
        error: str,
        operation: str,
        stdin: Optional[bytes] = None,
        attach: bool = False,
        check: bool = True,
        interruptible: bool = True,
        interactive: bool = False,
    ) -> Tuple[int, str]:
        """
        Run `docker <args>`, polling for interrupts while it runs.

        attach=True streams output to the terminal instead of capturing it.
        interactive=True also hands it the terminal's stdin.
        Returns (exit code, stdout).
        """
        cmd = [self.docker_cli, *args]
        get_console().print_debug(f"$ {shlex.join(cmd)}")

        if interruptible and self.interrupted.is_set():
            raise TaskInterruptedError()

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE if stdin is not None else (None if interactive else subprocess.DEVNULL),
                stdout=None if attach else subprocess.PIPE,
                stderr=None if attach else subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ContainerRuntimeError(
                message=f"{error} {self.docker_cli} was not found. {DOCKER_HINT}",
                operation=operation,
                cause=e,
            ) from e

        pending = stdin
        while True:
            if interruptible and self.interrupted.is_set():
                proc.kill()
                proc.communicate()
                raise TaskInterruptedError()
            try:
                out, err = proc.communicate(pending, timeout=POLL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                # input is only sent on the first call
                pending = None

        stdout = (out or b"").decode("utf-8", errors="replace")
        stderr = (err or b"").decode("utf-8", errors="replace")

        if check and proc.returncode != 0:
            detail = stderr.strip() or stdout.strip()
            raise ContainerRuntimeError(
                message=f"{error} {detail}".strip(),
                operation=operation,
            )
        return proc.returncode, stdout

    # ---- images ----

    def image_exists(self, image: str) -> bool:
        code, _ = self._run(
            ["image", "inspect", image],
            error="Unable to inspect image.",
            operation="image_exists",
            check=False,
        )
        return code == 0

    def pull_image(self, image: str) -> None:
        self._run(["image", "pull", image], error="Unable to pull image.", operation="pull_image")

    def push_image(self, image: str) -> None:
        self._run(["image", "push", image], error="Unable to push image.", operation="push_image")

    def delete_image(self, image: str) -> None:
        self._run(
            ["image", "rm", "--force", image],
            error="Unable to delete image.",
            operation="delete_image",
            interruptible=False,
        )

    # ---- containers ----

    def create_container(
        self,
        image: str,
        *,
        source_dir: Path,
        environment: Mapping[str, str],
        mount_paths: Sequence[MountPath],
        mount_readonly: bool,
        ports: Sequence[str],
        location: str,
        user: str,
        command: str,
        extra_args: Sequence[str],
    ) -> str:
        args = ["container", "create"]
        args.extend(
            container_args(
                source_dir=source_dir,
                environment=environment,
                location=location,
                mount_paths=mount_paths,
                mount_readonly=mount_readonly,
                ports=ports,
                extra_args=extra_args,
            )
        )
        args.extend([image, "/bin/su", "-c", command, user])

        _, out = self._run(args, error="Unable to create container.", operation="create_container")
        return out.strip()

    def copy_into(self, container: str, archive: bytes) -> None:
        self._run(
            ["container", "cp", "-", f"{container}:/"],
            error="Unable to copy files into the container.",
            operation="copy_into",
            stdin=archive,
        )

    def start(self, container: str) -> int:
        code, _ = self._run(
            ["container", "start", "--attach", container],
            error="Unable to start container.",
            operation="start",
            attach=True,
            check=False,
        )
        return code

    def copy_from(
        self,
        container: str,
        paths: Sequence[str],
        source_location: str,
        destination_dir: Path,
    ) -> None:
        # `docker container cp` is not idempotent: copying a directory onto an
        # existing one nests it. Copy into a fresh temp dir, then move in place.
        for path in paths:
            source = PurePosixPath(source_location) / path
            destination = Path(destination_dir) / path
            with tempfile.TemporaryDirectory() as tmp:
                intermediate = Path(tmp) / "data"
                self._run(
                    ["container", "cp", f"{container}:{source}", str(intermediate)],
                    error=f"Unable to copy {source} from the container.",
                    operation="copy_from",
                )
                _move_into_place(intermediate, destination)

    def commit(self, container: str, image: str) -> None:
        self._run(
            ["container", "commit", container, image],
            error="Unable to commit container.",
            operation="commit",
        )

    def delete_container(self, container: str) -> None:
        self._run(
            ["container", "rm", "--force", container],
            error="Unable to delete container.",
            operation="delete_container",
            interruptible=False,
        )

    def spawn_shell(
        self,
        image: str,
        *,
        source_dir: Path,
        environment: Mapping[str, str],
        mount_paths: Sequence[MountPath],
        mount_readonly: bool,
        ports: Sequence[str],
        location: str,
        user: str,
        extra_args: Sequence[str],
    ) -> None:
        args = ["container", "run", "--rm", "--interactive", "--tty"]
        args.extend(
            container_args(
                source_dir=source_dir,
                environment=environment,
                location=location,
                mount_paths=mount_paths,
                mount_readonly=mount_readonly,
                ports=ports,
                extra_args=extra_args,
            )
        )
        args.extend([image, "/bin/su", user])

        # Ctrl+C belongs to the shell, so the interrupt event is ignored here.
        self._run(
            args,
            error="The shell exited with a failure.",
            operation="spawn_shell",
            attach=True,
            interactive=True,
            interruptible=False,
        )
