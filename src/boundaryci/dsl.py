# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional

from .model import Artifact, ArtifactKind, Boundary, BuildStep, Command, TestTarget


# ---------------------------------------------------------------------
# Command helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None, env: Optional[Dict[str, str]] = None) -> Command:
    """Create a shell command."""
    return Command(name=name, run=cmd, cwd=cwd, env=env or {})


def action(name: str, kind: str, **data: Any) -> Command:
    """Create a built-in action (transform-header, package-wasm, ...)."""
    return Command(name=name, kind=kind, data=data)


def artifact(path: str, kind: ArtifactKind | str, producer: str) -> Artifact:
    return Artifact(path=path, kind=ArtifactKind(kind), producer=producer)


# ---------------------------------------------------------------------
# Functional step helper
# ---------------------------------------------------------------------

def step(
    name: str,
    *commands: Command,  # allow: step("x", sh(...), sh(...))
    needs: Optional[List[str]] = None,
    cleans: Optional[List[str]] = None,
    artifacts: Optional[List[Artifact]] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to commands missing cwd
    description: str = "",
) -> BuildStep:
    commands_final = list(commands)
    if not commands_final:
        raise ValueError(f"step({name!r}) must have at least one command")

    if cwd is not None:
        commands_final = [c if c.cwd is not None else replace(c, cwd=cwd) for c in commands_final]

    return BuildStep(
        name=name,
        commands=commands_final,
        needs=list(needs or []),
        cleans=list(cleans or []),
        artifacts=list(artifacts or []),
        env=dict(env or {}),
        description=description,
    )


def test_target(
    name: str,
    boundary: Boundary | str,
    *commands: Command,
    artifacts: Optional[List[Artifact]] = None,
    env: Optional[Dict[str, str]] = None,
    library_dirs: Optional[List[str]] = None,
) -> TestTarget:
    if not commands:
        raise ValueError(f"test_target({name!r}) must have at least one command")
    return TestTarget(
        name=name,
        boundary=Boundary(boundary),
        commands=list(commands),
        artifacts=list(artifacts or []),
        env=dict(env or {}),
        library_dirs=list(library_dirs or []),
    )


test_target.__test__ = False  # not a pytest test


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*steps: BuildStep) -> List[BuildStep]:
    """
    Workflow definition helper.

    Users can write:
        from boundaryci import wf, step, sh

        def workflow():
            return wf(
                step(...),
                step(...),
            )

    Or use STEPS directly:
        STEPS = wf(step(...), step(...))
    """
    return list(steps)
