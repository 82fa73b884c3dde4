# dag.py
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import CycleError, DependencyError
from .format import code_str, series

if TYPE_CHECKING:
    from .model import Manifest


def dependency_graph(manifest: Manifest) -> Dict[str, Tuple[str, ...]]:
    """
    Adjacency view of the manifest: task name -> names it depends on.

    Edges point from a task to its dependencies. Nodes are plain names, so
    the graph never holds references between Task objects.
    """
    return {name: tuple(task.dependencies) for name, task in manifest.tasks.items()}


# ----------------------------------------------------------------------
# Missing dependencies
# ----------------------------------------------------------------------

def find_missing_dependencies(manifest: Manifest) -> Dict[str, List[str]]:
    """Every task -> its dependencies that are not tasks in the manifest."""
    missing: Dict[str, List[str]] = {}
    for name, task in manifest.tasks.items():
        for dep in task.dependencies:
            if dep not in manifest.tasks:
                missing.setdefault(name, []).append(dep)
    return missing


def check_dependencies(manifest: Manifest) -> None:
    """
    Raise a single DependencyError covering all invalid dependencies and an
    invalid default task, if any.
    """
    invalid_default: Optional[str] = None
    if manifest.default is not None and manifest.default not in manifest.tasks:
        invalid_default = manifest.default

    violations = find_missing_dependencies(manifest)

    if violations:
        report = series(
            [
                f"{code_str(task)} ({series([code_str(d) for d in deps])})"
                for task, deps in violations.items()
            ]
        )
        if invalid_default is None:
            message = f"The following tasks have invalid dependencies: {report}."
        else:
            message = (
                f"The default task {code_str(invalid_default)} does not exist, and the "
                f"following tasks have invalid dependencies: {report}."
            )
        raise DependencyError(
            message=message,
            violations=violations,
            invalid_default=invalid_default,
        )

    if invalid_default is not None:
        raise DependencyError(
            message=f"The default task {code_str(invalid_default)} does not exist.",
            invalid_default=invalid_default,
        )


# ----------------------------------------------------------------------
# Cycles
# ----------------------------------------------------------------------

def find_cycle(graph: Mapping[str, Sequence[str]]) -> Optional[List[str]]:
    """
    Return the first dependency cycle found, or None for a DAG.

    Iterative DFS. The frontier holds (node, depth) pairs; before a node is
    processed the ancestor stack is trimmed back to its depth, so the stack
    always equals the current path. Each node is expanded once (visited set),
    which keeps the whole scan O(V + E).

    The returned cycle starts at the repeated node and follows dependency
    edges: [a, b, c] means a -> b -> c -> a.
    """
    visited: Set[str] = set()

    for root in graph:
        if root in visited:
            continue

        frontier: List[Tuple[str, int]] = [(root, 0)]
        ancestors_set: Set[str] = set()
        ancestors_stack: List[str] = []

        while frontier:
            node, depth = frontier.pop()

            while len(ancestors_stack) > depth:
                ancestors_set.discard(ancestors_stack.pop())

            if node in ancestors_set:
                return ancestors_stack[ancestors_stack.index(node):]

            if node in visited:
                continue
            visited.add(node)
            ancestors_set.add(node)
            ancestors_stack.append(node)

            # reversed so the first declared dependency is explored first
            for dep in reversed(graph.get(node, ())):
                frontier.append((dep, depth + 1))

    return None


def describe_cycle(cycle: Sequence[str]) -> str:
    if len(cycle) == 1:
        return f"{code_str(cycle[0])} depends on itself."
    if len(cycle) == 2:
        return f"{code_str(cycle[0])} and {code_str(cycle[1])} depend on each other."
    successors = list(cycle[1:]) + [cycle[0]]
    return series(
        [f"{code_str(a)} depends on {code_str(b)}" for a, b in zip(cycle, successors)]
    ) + "."


def check_cycles(manifest: Manifest) -> None:
    cycle = find_cycle(dependency_graph(manifest))
    if cycle is not None:
        raise CycleError(
            message=f"The dependencies are cyclic. {describe_cycle(cycle)}",
            cycle=cycle,
        )


# ----------------------------------------------------------------------
# Schedule
# ----------------------------------------------------------------------

def compute_schedule(manifest: Manifest, roots: str | Iterable[str] | None = None) -> List[str]:
    """
    Order the requested tasks and their transitive dependencies so every
    dependency runs before its dependents. Each task appears once.

    roots:
      - a task name, or several (run in the given order)
      - None / empty: the manifest default, or every task when there is none

    Ties between independent tasks follow declaration order: roots in the
    order given, dependencies in the order each task lists them.

    The manifest is expected to be validated already.
    """
    if isinstance(roots, str):
        requested = [roots]
    else:
        requested = list(roots or [])
    if not requested:
        requested = [manifest.default] if manifest.default is not None else list(manifest.tasks)

    unknown = [r for r in requested if r not in manifest.tasks]
    if unknown:
        raise DependencyError(
            message=f"No such task: {series([code_str(r) for r in unknown])}.",
            violations={"<requested>": unknown},
        )

    schedule: List[str] = []
    scheduled: Set[str] = set()
    in_progress: Set[str] = set()

    for root in requested:
        # (name, expanded): expanded entries are emitted once their deps are done
        stack: List[Tuple[str, bool]] = [(root, False)]
        while stack:
            name, expanded = stack.pop()
            if expanded:
                in_progress.discard(name)
                if name not in scheduled:
                    scheduled.add(name)
                    schedule.append(name)
                continue
            if name in scheduled:
                continue
            if name in in_progress:
                check_cycles(manifest)
            in_progress.add(name)
            stack.append((name, True))
            for dep in reversed(manifest.tasks[name].dependencies):
                if dep not in scheduled:
                    stack.append((dep, False))

    return schedule
