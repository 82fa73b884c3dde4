# runner.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Collection, Dict, Mapping, Optional, Sequence, Tuple

from .cache import derive_cache_key
from .environment import effective_command, effective_location, effective_user, resolve_environment
from .errors import ContainerRuntimeError, TaskboxError, TaskInterruptedError
from .fileset import InputFiles, build_archive, hash_task_inputs
from .format import code_str
from .model import Manifest, Task
from .runtime.base import ContainerRuntime
from .settings import Settings
from .ui.console import Console, get_console

# local files ---> container ---> committed image (tagged by cache key) ---> next task

STATUS_CACHED = "cached"
STATUS_BUILT = "built"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"
STATUS_INTERRUPTED = "interrupted"

# (source_dir, task) -> the task's filtered input fileset and its digest
InputHasher = Callable[[Path, Task], InputFiles]


@dataclass
class RunResult:
    """
    image: the image the run ended on (the base image for an empty schedule),
           or None when the last task's container was not kept as an image
    statuses: task -> one of the STATUS_* values, in schedule order
    images: task -> image tag it produced or reused
    """
    image: Optional[str]
    statuses: Dict[str, str] = field(default_factory=dict)
    images: Dict[str, str] = field(default_factory=dict)


@dataclass
class _Outcome:
    image: str
    status: str
    environment: Mapping[str, str]
    committed: bool = False
    # committed only for this run; deleted once nothing builds on it
    disposable: bool = False


class TaskRunner:
    """
    Runs a schedule one task at a time on top of the manifest's base image.

    Each task either reuses the image tagged with its cache key or builds it
    in a fresh container. The first failure stops the run; images committed
    before it stay, so a retry resumes from there.
    """

    def __init__(
        self,
        manifest: Manifest,
        runtime: ContainerRuntime,
        *,
        settings: Optional[Settings] = None,
        source_dir: str | Path = ".",
        environ: Optional[Mapping[str, str]] = None,
        input_hasher: InputHasher = hash_task_inputs,
        interrupted: Optional[threading.Event] = None,
        forced: Collection[str] = (),
        console: Optional[Console] = None,
    ):
        self.manifest = manifest
        self.runtime = runtime
        self.settings = settings or Settings()
        self.source_dir = Path(source_dir)
        self.environ = environ
        self.input_hasher = input_hasher
        self.interrupted = interrupted or threading.Event()
        self.forced = set(forced)
        self.console = console or get_console()

        self.statuses: Dict[str, str] = {}
        self.images: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, schedule: Sequence[str], *, shell: bool = False) -> RunResult:
        """
        Run `schedule` in order. With shell=True, finish by opening an
        interactive shell in the final image, configured like the last task.
        """
        previous_image = self.manifest.image
        # The image the run ends on, when it exists (the last task may not
        # have been committed).
        available: Optional[str] = previous_image
        # Once an uncached task has run, later images descend from state the
        # cache keys cannot vouch for.
        caching = True
        # Committed only to serve as the next task's base image.
        transient: Optional[str] = None
        last_task: Optional[Task] = None
        last_environment: Mapping[str, str] = {}

        try:
            for index, name in enumerate(schedule):
                task = self.manifest.tasks[name]
                last = index == len(schedule) - 1

                if self.interrupted.is_set():
                    self.statuses[name] = STATUS_INTERRUPTED
                    raise TaskInterruptedError(task=name)

                self.console.print_task_start(name)
                try:
                    outcome = self._run_task(
                        name,
                        task,
                        previous_image,
                        caching=caching,
                        keep=not last or shell,
                    )
                except TaskInterruptedError as e:
                    self.statuses[name] = STATUS_INTERRUPTED
                    if e.task is None:
                        e.task = name
                    raise
                except TaskboxError as e:
                    if self.interrupted.is_set():
                        self.statuses[name] = STATUS_INTERRUPTED
                        raise TaskInterruptedError(task=name) from e
                    self.statuses[name] = STATUS_FAILED
                    self.console.print_failure(
                        name,
                        str(e),
                        exit_code=getattr(e, "exit_code", None),
                    )
                    raise

                image = outcome.image
                self.statuses[name] = outcome.status
                self.images[name] = image

                if transient is not None and transient != image:
                    self._discard_image(transient)
                    transient = None
                if outcome.disposable:
                    transient = image

                if outcome.status == STATUS_BUILT:
                    available = image if outcome.committed else None
                elif outcome.status == STATUS_CACHED:
                    available = image

                previous_image = image
                last_task, last_environment = task, outcome.environment
                if not task.cache:
                    caching = False

            if shell:
                self._spawn_shell(available, last_task, last_environment)
        finally:
            if transient is not None:
                self._discard_image(transient)
                if available == transient:
                    available = None

        return RunResult(image=available, statuses=dict(self.statuses), images=dict(self.images))

    # ------------------------------------------------------------------
    # One task
    # ------------------------------------------------------------------

    def _run_task(
        self,
        name: str,
        task: Task,
        previous_image: str,
        *,
        caching: bool,
        keep: bool,
    ) -> _Outcome:
        """keep: the image must exist afterwards (a later task or the shell builds on it)."""
        environment = resolve_environment(task, self.environ, name=name)
        inputs = self.input_hasher(self.source_dir, task)
        image = derive_cache_key(
            previous_image,
            self.settings.docker_repo,
            self.manifest,
            task,
            inputs.digest,
            environment,
        )
        location = effective_location(self.manifest, task)

        if image == previous_image:
            self.console.print_task_skipped(name, "nothing to run")
            if task.output_paths:
                self._extract_outputs(task, image, location)
            return _Outcome(image, STATUS_SKIPPED, environment)

        cacheable = caching and task.cache
        if cacheable and name not in self.forced and self._find_cached_image(image):
            self.console.print_cache_hit(name, image)
            if task.output_paths:
                self._extract_outputs(task, image, location)
            return _Outcome(image, STATUS_CACHED, environment)

        if not cacheable:
            self.console.print_cache_miss(name, "caching disabled")
        elif name in self.forced:
            self.console.print_cache_miss(name, "forced")
        else:
            self.console.print_cache_miss(name)

        write_cache = cacheable and (
            self.settings.write_local_cache or self.settings.write_remote_cache
        )
        commit = write_cache or keep

        # An image committed without writing the local cache is deleted after
        # use, unless the tag was already present locally.
        disposable = commit and not (cacheable and self.settings.write_local_cache)
        if disposable and self.runtime.image_exists(image):
            disposable = False

        self._build(name, task, previous_image, image, environment, inputs, location, commit=commit)

        if cacheable and self.settings.write_remote_cache:
            try:
                self.runtime.push_image(image)
            except BaseException:
                if disposable:
                    self._discard_image(image)
                raise

        self.console.print_task_built(name, image if commit else None)
        return _Outcome(image, STATUS_BUILT, environment, committed=commit, disposable=disposable)

    def _find_cached_image(self, image: str) -> bool:
        if self.settings.read_local_cache and self.runtime.image_exists(image):
            return True
        if self.settings.read_remote_cache:
            try:
                self.runtime.pull_image(image)
            except ContainerRuntimeError as e:
                self.console.print_debug(f"Remote cache miss for {image}: {e}")
                return False
            return True
        return False

    def _build(
        self,
        name: str,
        task: Task,
        base_image: str,
        image: str,
        environment: Mapping[str, str],
        inputs: InputFiles,
        location: str,
        *,
        commit: bool,
    ) -> None:
        archive = build_archive(self.source_dir, inputs.paths, location) if inputs.paths else None

        container = self.runtime.create_container(
            base_image,
            source_dir=self.source_dir,
            environment=environment,
            mount_paths=task.mount_paths,
            mount_readonly=task.mount_readonly,
            ports=task.ports,
            location=location,
            user=effective_user(self.manifest, task),
            command=effective_command(self.manifest, task),
            extra_args=task.extra_docker_arguments,
        )
        try:
            if archive is not None:
                self.runtime.copy_into(container, archive)

            exit_code = self.runtime.start(container)
            if self.interrupted.is_set():
                raise TaskInterruptedError(task=name)

            if exit_code != 0:
                self._copy_failure_outputs(name, task, container, location)
                raise ContainerRuntimeError(
                    message=f"Task {code_str(name)} failed with exit code {exit_code}.",
                    operation="start",
                    task=name,
                    user_command=True,
                    exit_code=exit_code,
                )

            if task.output_paths:
                self.runtime.copy_from(container, task.output_paths, location, self.source_dir)

            if commit:
                if self.interrupted.is_set():
                    raise TaskInterruptedError(task=name)
                self.runtime.commit(container, image)
        except BaseException:
            self._discard_container(container)
            raise

        self.runtime.delete_container(container)

    # ------------------------------------------------------------------
    # Outputs and cleanup
    # ------------------------------------------------------------------

    def _extract_outputs(self, task: Task, image: str, location: str) -> None:
        """Copy output paths out of an existing image (no command is run)."""
        container = self.runtime.create_container(
            image,
            source_dir=self.source_dir,
            environment={},
            mount_paths=(),
            mount_readonly=False,
            ports=(),
            location=location,
            user=effective_user(self.manifest, task),
            command="",
            extra_args=(),
        )
        try:
            self.runtime.copy_from(container, task.output_paths, location, self.source_dir)
        except BaseException:
            self._discard_container(container)
            raise
        self.runtime.delete_container(container)

    def _copy_failure_outputs(self, name: str, task: Task, container: str, location: str) -> None:
        # best effort: the command may have died before creating them
        for path in task.output_paths_on_failure:
            try:
                self.runtime.copy_from(container, [path], location, self.source_dir)
            except ContainerRuntimeError as e:
                self.console.print_info(
                    f"[{name}] could not copy {path} from the failed container: {e}"
                )

    def _spawn_shell(
        self,
        image: Optional[str],
        task: Optional[Task],
        environment: Mapping[str, str],
    ) -> None:
        if image is None:
            raise ContainerRuntimeError(
                message="There is no image to open a shell in.",
                operation="spawn_shell",
            )
        self.console.print_info(f"\nSHELL: {image}")
        if task is None:
            task = Task()
        self.runtime.spawn_shell(
            image,
            source_dir=self.source_dir,
            environment=environment,
            mount_paths=task.mount_paths,
            mount_readonly=task.mount_readonly,
            ports=task.ports,
            location=effective_location(self.manifest, task),
            user=effective_user(self.manifest, task),
            extra_args=task.extra_docker_arguments,
        )

    def _discard_container(self, container: str) -> None:
        try:
            self.runtime.delete_container(container)
        except TaskboxError as e:
            self.console.print_info(f"Unable to delete container {container}: {e}")

    def _discard_image(self, image: str) -> None:
        try:
            self.runtime.delete_image(image)
        except TaskboxError as e:
            self.console.print_info(f"Unable to delete image {image}: {e}")


def run_tasks(
    manifest: Manifest,
    schedule: Sequence[str],
    runtime: ContainerRuntime,
    *,
    shell: bool = False,
    **kwargs,
) -> RunResult:
    """Convenience wrapper: TaskRunner(manifest, runtime, **kwargs).run(schedule, shell=shell)."""
    return TaskRunner(manifest, runtime, **kwargs).run(schedule, shell=shell)
