# runtime/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Sequence

from ..model import MountPath


class ContainerRuntime(ABC):
    """
    What the runner needs from a container engine.

    Every method may raise ContainerRuntimeError, or TaskInterruptedError
    when the run is being cancelled.
    """

    @abstractmethod
    def image_exists(self, image: str) -> bool: ...

    @abstractmethod
    def pull_image(self, image: str) -> None: ...

    @abstractmethod
    def push_image(self, image: str) -> None: ...

    @abstractmethod
    def delete_image(self, image: str) -> None:
        """Remove an image. Must work even while the run is being interrupted."""

    @abstractmethod
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
        """Create (but do not start) a container and return its ID."""

    @abstractmethod
    def copy_into(self, container: str, archive: bytes) -> None:
        """Extract a tar archive at the container's filesystem root."""

    @abstractmethod
    def start(self, container: str) -> int:
        """Run the container to completion, streaming output; return its exit code."""

    @abstractmethod
    def copy_from(
        self,
        container: str,
        paths: Sequence[str],
        source_location: str,
        destination_dir: Path,
    ) -> None:
        """Copy each relative path under `source_location` to `destination_dir`."""

    @abstractmethod
    def commit(self, container: str, image: str) -> None: ...

    @abstractmethod
    def delete_container(self, container: str) -> None:
        """Remove a container. Must work even while the run is being interrupted."""

    @abstractmethod
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
        """Run an interactive shell as `user` in a throwaway container of `image`."""
