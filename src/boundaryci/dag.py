# dag.py
from __future__ import annotations

import heapq
from collections import deque
from pathlib import PurePosixPath
from typing import Dict, List, Set, Tuple

from .model import BuildStep


def build_dag(steps: List[BuildStep]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from BuildStep objects.

    Requires:
      - step.name: str (unique)
      - step.needs: iterable[str] (names of steps that must run BEFORE this step)
    """
    names = [s.name for s in steps]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate step names found: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in name_set}
    indeg: Dict[str, int] = {n: 0 for n in name_set}

    for step in steps:
        for need in step.needs:
            if need not in name_set:
                raise ValueError(
                    f"Step '{step.name}' needs missing step '{need}'. "
                    f"Known steps: {sorted(name_set)}"
                )
            # Edge need -> step.name (need must run before step)
            if step.name not in adj[need]:
                adj[need].add(step.name)
                indeg[step.name] += 1

    return adj, indeg


def check_ownership(steps: List[BuildStep]) -> None:
    """No two steps may own the same directory or produce the same artifact."""
    owners: Dict[str, str] = {}
    for step in steps:
        claimed = list(step.cleans) + [a.path for a in step.artifacts]
        for path in dict.fromkeys(claimed):
            other = owners.get(path)
            if other is not None and other != step.name:
                raise ValueError(f"'{path}' is owned by both '{other}' and '{step.name}'")
            owners[path] = step.name
        for artifact in step.artifacts:
            if artifact.producer != step.name:
                raise ValueError(
                    f"Step '{step.name}' declares artifact '{artifact.path}' "
                    f"produced by '{artifact.producer}'"
                )

    # a cleaned directory may not contain another step's outputs
    for step in steps:
        for cleaned in step.cleans:
            parent = PurePosixPath(cleaned)
            for path, owner in owners.items():
                if owner != step.name and parent in PurePosixPath(path).parents:
                    raise ValueError(f"'{cleaned}' (owned by '{step.name}') contains '{path}' owned by '{owner}'")


def dependency_closure(steps: List[BuildStep], target: str) -> Set[str]:
    by_name = {s.name: s for s in steps}
    if target not in by_name:
        raise ValueError(f"Unknown target '{target}'. Known targets: {[s.name for s in steps]}")

    seen: Set[str] = set()
    stack = [target]
    while stack:
        name = stack.pop()
        if name in seen:
            continue
        seen.add(name)
        stack.extend(by_name[name].needs)
    return seen


def resolve_order(steps: List[BuildStep], target: str) -> List[str]:
    """
    Total execution order for `target` and its transitive dependencies.

    Stable: whenever more than one step is ready, the one declared first
    in `steps` goes first.
    """
    adj, _ = build_dag(steps)
    wanted = dependency_closure(steps, target)
    position = {s.name: i for i, s in enumerate(steps)}

    indeg: Dict[str, int] = {n: 0 for n in wanted}
    for name in wanted:
        for child in adj[name]:
            if child in wanted:
                indeg[child] += 1

    ready = [(position[n], n) for n, d in indeg.items() if d == 0]
    heapq.heapify(ready)
    order: List[str] = []

    while ready:
        _, node = heapq.heappop(ready)
        order.append(node)
        for child in adj[node]:
            if child not in wanted:
                continue
            indeg[child] -= 1
            if indeg[child] == 0:
                heapq.heappush(ready, (position[child], child))

    if len(order) != len(wanted):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise ValueError(f"DAG has a cycle (or unresolved needs). Stuck nodes: {remaining}")

    return order


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Steps in one level do not depend on each other.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise ValueError(f"DAG has a cycle (or unresolved needs). Stuck nodes: {remaining}")

    return levels
