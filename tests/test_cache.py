from __future__ import annotations

import hashlib

import pytest

from taskbox.cache import combine, crypto_hash, derive_cache_key, environment_digest
from taskbox.model import Manifest, Task

PREVIOUS = "ubuntu:24.04"
REPO = "taskbox"


def _key(
    *,
    previous=PREVIOUS,
    manifest=None,
    task=None,
    inputs="inputs-digest",
    environment=None,
) -> str:
    manifest = manifest or Manifest(image=PREVIOUS)
    task = task or Task(environment={"CI": None}, input_paths=("src",), command="make")
    if environment is None:
        environment = {"CI": "true"}
    return derive_cache_key(previous, REPO, manifest, task, inputs, environment)


def test_crypto_hash_is_sha256_hex() -> None:
    assert crypto_hash("abc") == hashlib.sha256(b"abc").hexdigest()


def test_combine_hashes_both_sides() -> None:
    expected = crypto_hash(crypto_hash("a") + crypto_hash("b"))

    assert combine("a", "b") == expected
    assert combine("a", "b") != combine("b", "a")
    assert combine("ab", "c") != combine("a", "bc")


def test_tag_format() -> None:
    tag = _key()
    repo, _, name = tag.partition(":")

    assert repo == REPO
    assert name.startswith("task-")
    assert len(name) == len("task-") + 64


def test_key_is_pure() -> None:
    assert _key() == _key()


def test_environment_insertion_order_does_not_matter() -> None:
    task_ab = Task(environment={"A": None, "B": None}, command="make")
    task_ba = Task(environment={"B": None, "A": None}, command="make")

    first = _key(task=task_ab, environment={"A": "1", "B": "2"})
    second = _key(task=task_ba, environment={"B": "2", "A": "1"})

    assert first == second


@pytest.mark.parametrize(
    "change",
    [
        {"previous": "ubuntu:22.04"},
        {"inputs": "other-digest"},
        {"environment": {"CI": "false"}},
        {"task": Task(environment={"CD": None}, input_paths=("src",), command="make")},
        {"task": Task(environment={"CI": None}, input_paths=("src",), command="make test")},
        {"task": Task(environment={"CI": None}, input_paths=("src",), command="make", location="/w")},
        {"task": Task(environment={"CI": None}, input_paths=("src",), command="make", user="u")},
        {"manifest": Manifest(image=PREVIOUS, command_prefix="set -e")},
    ],
)
def test_every_input_changes_the_key(change) -> None:
    if "task" in change and "CD" in change["task"].environment:
        change = {**change, "environment": {"CD": "true"}}

    assert _key(**change) != _key()


def test_noop_task_reuses_previous_image() -> None:
    task = Task()

    assert derive_cache_key(PREVIOUS, REPO, Manifest(image=PREVIOUS), task, "", {}) == PREVIOUS


def test_command_prefix_alone_is_not_a_noop() -> None:
    manifest = Manifest(image=PREVIOUS, command_prefix="set -e")

    assert derive_cache_key(PREVIOUS, REPO, manifest, Task(), "", {}) != PREVIOUS


def test_environment_digest_folds_sorted_names_and_values() -> None:
    task = Task(environment={"B": None, "A": None})

    expected = combine(combine(combine(combine("", "A"), "1"), "B"), "2")

    assert environment_digest(task, {"A": "1", "B": "2"}) == expected
    assert environment_digest(Task(), {}) == ""
