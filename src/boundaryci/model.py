# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ArtifactKind(str, Enum):
    BINARY_MODULE = "binary-module"
    NATIVE_SHARED_LIBRARY = "native-shared-library"
    RAW_HEADER = "raw-header"
    PUBLIC_HEADER = "public-header"
    PACKAGED_MODULE = "packaged-module"


class Boundary(str, Enum):
    """Consumption boundary a conformance target exercises."""
    NATIVE = "native"
    SCRIPT = "script"
    ABI = "abi"


@dataclass(frozen=True)
class Artifact:
    """A file or directory produced by exactly one build step."""
    path: str
    kind: ArtifactKind
    producer: str


@dataclass(frozen=True)
class Command:
    """
    A single action inside a build step.

    kind == "shell" runs `run` through the shell.
    Any other kind names a built-in action; its parameters live in `data`.
    """
    name: str
    run: str = ""
    cwd: str | None = None
    kind: str = "shell"
    data: Optional[Dict[str, Any]] = None
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class BuildStep:
    """
    A named unit of the pipeline: commands + dependencies + owned outputs.

    Every directory in `cleans` is removed and recreated empty before
    the first command runs.
    """
    name: str
    commands: list[Command]

    needs: list[str] = field(default_factory=list)
    cleans: list[str] = field(default_factory=list)
    artifacts: list[Artifact] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass(frozen=True)
class TestTarget:
    """One conformance harness run against a built artifact set."""
    name: str
    boundary: Boundary
    commands: List[Command]
    artifacts: List[Artifact] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    # Prepended to the dynamic loader search path for this target only
    library_dirs: List[str] = field(default_factory=list)

    __test__ = False  # keep pytest from collecting this class


@dataclass
class TestOutcome:
    target: str
    boundary: Boundary
    passed: bool
    error: str | None = None
    duration: float = 0.0

    __test__ = False


@dataclass
class FanoutReport:
    generation: str
    outcomes: list[TestOutcome] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(o.passed for o in self.outcomes)

    @property
    def failed(self) -> list[TestOutcome]:
        return [o for o in self.outcomes if not o.passed]


class PublishState(str, Enum):
    NOT_STARTED = "not-started"
    TRYING_VERIFIED = "trying-verified"
    TRYING_UNVERIFIED = "trying-unverified"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PublishTry:
    verified: bool
    cmd: str
    ok: bool
    error: str | None = None


@dataclass
class PublishAttempt:
    """At most two tries: verified, then (maybe) unverified."""
    state: PublishState = PublishState.NOT_STARTED
    tries: list[PublishTry] = field(default_factory=list)
    recognized: str | None = None  # error class that triggered the fallback


@dataclass
class RunResult:
    """Outcome of one runner invocation."""
    target: str
    generation: str
    order: list[str]
    statuses: Dict[str, str] = field(default_factory=dict)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(v == "ok" for v in self.statuses.values())

    @property
    def failed_step(self) -> str | None:
        for name, status in self.statuses.items():
            if status == "failed":
                return name
        return None
