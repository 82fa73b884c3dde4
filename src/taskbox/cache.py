# cache.py
from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Mapping

from .environment import effective_command, effective_location, effective_user

if TYPE_CHECKING:
    from .model import Manifest, Task

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Every task produces a container image. Its tag is a hash chain:
#
#   key = hash(CACHE_VERSION)
#   key = combine(key, previous task's image)
#   key = combine(key, environment digest)   # sorted by variable name
#   key = combine(key, input files digest)
#   key = combine(key, location)
#   key = combine(key, user)
#   key = combine(key, command)
#
# Folding in the previous image means a change anywhere upstream changes
# every tag downstream of it, so "image exists" is a safe cache hit.
# ---------------------------------------------------------------------

# Bump this to invalidate every existing cached image.
CACHE_VERSION = 0

# Docker refuses tags that are 64 hex characters, hence the prefix.
TAG_PREFIX = "task-"


def crypto_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def combine(x: str, y: str) -> str:
    """
    Hash two strings together. Changing either side changes the result, and
    moving characters across the boundary does too ("ab","c" != "a","bc").
    """
    return crypto_hash(crypto_hash(x) + crypto_hash(y))


def environment_digest(task: Task, environment: Mapping[str, str]) -> str:
    digest = ""
    for variable in sorted(task.environment):
        digest = combine(digest, variable)
        digest = combine(digest, environment[variable])
    return digest


def derive_cache_key(
    previous_image: str,
    repository: str,
    manifest: Manifest,
    task: Task,
    input_files_hash: str,
    environment: Mapping[str, str],
) -> str:
    """
    Tag of the image that running `task` on top of `previous_image` produces.

    A task with no environment, no inputs and no command changes nothing, so
    its tag is the previous image itself.
    """
    command = effective_command(manifest, task)

    if not task.environment and not task.input_paths and not command:
        return previous_image

    key = crypto_hash(str(CACHE_VERSION))
    key = combine(key, previous_image)
    key = combine(key, environment_digest(task, environment))
    key = combine(key, input_files_hash)
    key = combine(key, effective_location(manifest, task))
    key = combine(key, effective_user(manifest, task))
    key = combine(key, command)

    return f"{repository}:{TAG_PREFIX}{key}"
