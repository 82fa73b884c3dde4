from __future__ import annotations

import pytest

from taskbox.settings import Settings


def test_defaults() -> None:
    settings = Settings.from_env({})

    assert settings == Settings()
    assert settings.manifest_path == "taskbox.yml"
    assert settings.docker_cli == "docker"
    assert settings.docker_repo == "taskbox"
    assert settings.read_local_cache and settings.write_local_cache
    assert not settings.read_remote_cache and not settings.write_remote_cache


def test_from_env() -> None:
    settings = Settings.from_env(
        {
            "TASKBOX_FILE": "ci/tasks.yml",
            "TASKBOX_DOCKER_CLI": "podman",
            "TASKBOX_DOCKER_REPO": "registry.example.com/cache",
            "TASKBOX_READ_LOCAL_CACHE": "no",
            "TASKBOX_WRITE_REMOTE_CACHE": "TRUE",
        }
    )

    assert settings.manifest_path == "ci/tasks.yml"
    assert settings.docker_cli == "podman"
    assert settings.docker_repo == "registry.example.com/cache"
    assert settings.read_local_cache is False
    assert settings.write_remote_cache is True


def test_blank_flag_uses_default() -> None:
    assert Settings.from_env({"TASKBOX_READ_LOCAL_CACHE": "  "}).read_local_cache is True


def test_bad_flag_is_rejected() -> None:
    with pytest.raises(ValueError, match="TASKBOX_WRITE_LOCAL_CACHE"):
        Settings.from_env({"TASKBOX_WRITE_LOCAL_CACHE": "sometimes"})


def test_overrides_ignore_none() -> None:
    settings = Settings().with_overrides(docker_repo="mine", read_remote_cache=None)

    assert settings.docker_repo == "mine"
    assert settings.read_remote_cache is False
