"""Shared test fixtures."""

from __future__ import annotations

import textwrap
from pathlib import Path, PurePosixPath
from typing import Dict, List, Sequence, Set

import pytest

from taskbox.errors import ContainerRuntimeError
from taskbox.model import parse_manifest
from taskbox.runtime.base import ContainerRuntime
from taskbox.ui.console import Console, set_console


class FakeRuntime(ContainerRuntime):
    """
    In-memory ContainerRuntime.

    Records every call in `calls` as (operation, args...). Containers "run" by
    looking up an exit code per command; a container's files are whatever the
    test puts in `container_files[command]` (relative path -> text).
    """

    def __init__(self):
        self.images: Set[str] = set()
        self.remote_images: Set[str] = set()
        self.containers: Dict[str, dict] = {}
        self.calls: List[tuple] = []
        self.exit_codes: Dict[str, int] = {}
        self.container_files: Dict[str, Dict[str, str]] = {}
        self.on_start = None
        self._next_id = 0

    def image_exists(self, image: str) -> bool:
        self.calls.append(("image_exists", image))
        return image in self.images

    def pull_image(self, image: str) -> None:
        self.calls.append(("pull_image", image))
        if image not in self.remote_images:
            raise ContainerRuntimeError(message="Unable to pull image.", operation="pull_image")
        self.images.add(image)

    def push_image(self, image: str) -> None:
        self.calls.append(("push_image", image))
        self.remote_images.add(image)

    def delete_image(self, image: str) -> None:
        self.calls.append(("delete_image", image))
        self.images.discard(image)

    def create_container(self, image, *, source_dir, environment, mount_paths, mount_readonly,
                         ports, location, user, command, extra_args) -> str:
        self._next_id += 1
        container = f"c{self._next_id}"
        self.calls.append(("create_container", image, command))
        self.containers[container] = {
            "image": image,
            "environment": dict(environment),
            "location": location,
            "user": user,
            "command": command,
            "archive": None,
        }
        return container

    def copy_into(self, container: str, archive: bytes) -> None:
        self.calls.append(("copy_into", container))
        self.containers[container]["archive"] = archive

    def start(self, container: str) -> int:
        command = self.containers[container]["command"]
        self.calls.append(("start", container, command))
        if self.on_start is not None:
            self.on_start(container)
        return self.exit_codes.get(command, 0)

    def copy_from(self, container: str, paths: Sequence[str], source_location: str,
                  destination_dir: Path) -> None:
        self.calls.append(("copy_from", container, tuple(paths)))
        files = self.container_files.get(self.containers[container]["command"], {})
        for path in paths:
            if path not in files:
                raise ContainerRuntimeError(
                    message=f"Unable to copy {PurePosixPath(source_location) / path} from the container.",
                    operation="copy_from",
                )
            target = Path(destination_dir) / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(files[path])

    def commit(self, container: str, image: str) -> None:
        self.calls.append(("commit", container, image))
        self.images.add(image)

    def delete_container(self, container: str) -> None:
        self.calls.append(("delete_container", container))
        self.containers.pop(container, None)

    def spawn_shell(self, image, *, source_dir, environment, mount_paths, mount_readonly,
                    ports, location, user, extra_args) -> None:
        self.calls.append(("spawn_shell", image, user, tuple(str(m) for m in mount_paths)))
        self.shell_environment = dict(environment)

    def operations(self, *names: str) -> List[tuple]:
        return [c for c in self.calls if c[0] in names]


@pytest.fixture()
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(debug=False))


def manifest_from(text: str, *, validate: bool = True):
    return parse_manifest(textwrap.dedent(text), validate=validate)


@pytest.fixture()
def make_manifest():
    return manifest_from


@pytest.fixture()
def write_manifest(tmp_path):
    def _write(text: str, name: str = "taskbox.yml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path
    return _write
