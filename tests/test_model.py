from __future__ import annotations

import pytest

from taskbox.errors import ManifestError
from taskbox.model import DEFAULT_LOCATION, DEFAULT_USER, MountPath, load_manifest


def test_defaults_are_filled_in(make_manifest) -> None:
    manifest = make_manifest(
        """
        image: ubuntu:24.04
        tasks:
          build:
            command: make
        """
    )

    assert manifest.image == "ubuntu:24.04"
    assert manifest.default is None
    assert manifest.location == DEFAULT_LOCATION == "/scratch"
    assert manifest.user == DEFAULT_USER == "root"
    assert manifest.command_prefix == ""

    task = manifest.tasks["build"]
    assert task.cache is True
    assert task.mount_readonly is False
    assert task.dependencies == ()
    assert task.location is None
    assert task.user is None
    assert task.command_prefix is None


def test_tasks_keep_declaration_order(make_manifest) -> None:
    manifest = make_manifest(
        """
        image: alpine
        tasks:
          zeta: {}
          alpha: {}
          mid: {}
        """
    )

    assert list(manifest.tasks) == ["zeta", "alpha", "mid"]


def test_environment_defaults_may_be_null(make_manifest) -> None:
    manifest = make_manifest(
        """
        image: alpine
        tasks:
          deploy:
            environment:
              TOKEN: null
              REGION: eu-west-1
        """
    )

    assert manifest.tasks["deploy"].environment == {"TOKEN": None, "REGION": "eu-west-1"}


def test_mount_paths_are_parsed(make_manifest) -> None:
    manifest = make_manifest(
        """
        image: alpine
        tasks:
          shell:
            cache: false
            mount_paths:
              - src:/code
              - data
        """
    )

    mounts = manifest.tasks["shell"].mount_paths
    assert mounts == (
        MountPath(host_path="src", container_path="/code"),
        MountPath(host_path="data", container_path="data"),
    )
    assert str(mounts[0]) == "src:/code"


def test_unknown_task_field_is_rejected(make_manifest) -> None:
    with pytest.raises(ManifestError) as excinfo:
        make_manifest(
            """
            image: alpine
            tasks:
              build:
                comand: make
            """
        )

    assert "comand" in str(excinfo.value)


def test_unknown_top_level_field_is_rejected(make_manifest) -> None:
    with pytest.raises(ManifestError):
        make_manifest(
            """
            image: alpine
            workers: 4
            """
        )


def test_wrong_type_is_rejected(make_manifest) -> None:
    with pytest.raises(ManifestError) as excinfo:
        make_manifest(
            """
            image: alpine
            tasks:
              build:
                cache: maybe
            """
        )

    assert "tasks.build.cache" in str(excinfo.value)


def test_empty_document_is_missing_image(make_manifest) -> None:
    with pytest.raises(ManifestError) as excinfo:
        make_manifest("")

    assert "image" in str(excinfo.value)


def test_non_mapping_document_is_rejected(make_manifest) -> None:
    with pytest.raises(ManifestError, match="must be a mapping"):
        make_manifest("- just\n- a list\n")


def test_invalid_yaml_is_rejected(make_manifest) -> None:
    with pytest.raises(ManifestError, match="Unable to parse"):
        make_manifest("image: [unterminated\n")


def test_manifest_is_immutable(make_manifest) -> None:
    manifest = make_manifest("image: alpine\n")

    with pytest.raises(Exception):
        manifest.image = "debian"


def test_load_manifest_reads_file(write_manifest) -> None:
    path = write_manifest(
        """
        image: alpine
        default: hello
        tasks:
          hello:
            command: echo hello
        """
    )

    manifest = load_manifest(path)

    assert manifest.default == "hello"
    assert manifest.tasks["hello"].command == "echo hello"


def test_load_manifest_missing_file(tmp_path) -> None:
    with pytest.raises(ManifestError, match="not found"):
        load_manifest(tmp_path / "nope.yml")


def test_parse_without_validation_allows_dangling_dependencies(make_manifest) -> None:
    manifest = make_manifest(
        """
        image: alpine
        tasks:
          build:
            dependencies: [missing]
        """,
        validate=False,
    )

    assert manifest.tasks["build"].dependencies == ("missing",)
