# step_workflows/fanout.py
from __future__ import annotations

import os
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..errors import BuildError, VerificationFailure
from ..model import BuildStep, Command, FanoutReport, TestOutcome, TestTarget
from ..ui.console import get_console

if TYPE_CHECKING:
    from ..generations import GenerationLedger
    from ..runner import StepContext


def loader_path_var(platform: str | None = None) -> str:
    """Environment variable the dynamic loader searches for shared libraries."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "PATH"
    if platform == "darwin":
        return "DYLD_LIBRARY_PATH"
    return "LD_LIBRARY_PATH"


def target_env(target: TestTarget, root: Path, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Environment overrides for one target.

    library_dirs are prepended to the loader search path; `base` (default
    os.environ) is only read, never mutated.
    """
    base = os.environ if base is None else base
    env = dict(target.env)
    if target.library_dirs:
        var = loader_path_var()
        dirs = [str((root / d).resolve()) for d in target.library_dirs]
        existing = env.get(var, base.get(var, ""))
        env[var] = os.pathsep.join(dirs + ([existing] if existing else []))
    return env


def fanout_step(name: str, needs: List[str], targets: List[TestTarget], cleans: List[str] | None = None) -> BuildStep:
    return BuildStep(
        name=name,
        description=f"Conformance fanout: {', '.join(t.name for t in targets)}",
        needs=list(needs),
        cleans=list(cleans or []),
        commands=[
            Command(
                name="Run conformance targets",
                kind="fanout",
                data={"targets": list(targets)},
            )
        ],
    )


# ---------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------

def artifact_problems(
    target: TestTarget,
    root: Path,
    generation: str,
    ledger: "GenerationLedger",
) -> List[str]:
    """Why `target` cannot run: missing artifacts or ones from another build generation."""
    problems: List[str] = []
    for artifact in target.artifacts:
        full = (root / artifact.path).resolve()
        if not full.exists():
            problems.append(f"missing {artifact.kind.value} {artifact.path} (from {artifact.producer})")
            continue
        stamped = ledger.get(artifact.producer)
        if stamped != generation:
            problems.append(
                f"stale {artifact.path}: built by generation {stamped or 'unknown'}, current is {generation}"
            )
    return problems


def run_target(target: TestTarget, root: Path, step: str | None = None) -> TestOutcome:
    # Import here to avoid circular import
    from ..runner import run_shell

    env = target_env(target, root)
    started = time.monotonic()
    for command in target.commands:
        cmd_env = dict(env)
        cmd_env.update(command.env)
        try:
            run_shell(step, command.run, cwd=(root / (command.cwd or ".")).resolve(), env=cmd_env)
        except BuildError as e:
            return TestOutcome(
                target=target.name,
                boundary=target.boundary,
                passed=False,
                error=f"{command.name}: {str(e).splitlines()[0]}",
                duration=time.monotonic() - started,
            )
    return TestOutcome(
        target=target.name,
        boundary=target.boundary,
        passed=True,
        duration=time.monotonic() - started,
    )


def run_fanout(
    targets: List[TestTarget],
    root: Path,
    generation: str,
    ledger: "GenerationLedger",
    step: str | None = None,
) -> FanoutReport:
    """
    Run every target against the same build generation.

    A failing target, or one whose artifacts are missing or stale, does not
    stop its siblings. Raises VerificationFailure naming each failed target
    if any did not pass.
    """
    names = [t.name for t in targets]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate conformance target names: {names}")

    console = get_console()
    report = FanoutReport(generation=generation)
    for target in targets:
        problems = artifact_problems(target, root, generation, ledger)
        if problems:
            outcome = TestOutcome(
                target=target.name,
                boundary=target.boundary,
                passed=False,
                error="; ".join(problems),
            )
        else:
            outcome = run_target(target, root, step=step)
        report.outcomes.append(outcome)
        console.print_target_result(target.name, target.boundary.value, outcome.passed)
        if outcome.error:
            console.print_debug(outcome.error)

    if not report.passed:
        raise VerificationFailure(
            step,
            {o.target: o.error or "failed" for o in report.failed},
            report=report,
        )
    return report


def run_step(ctx: "StepContext", command: Command) -> None:
    data = command.data or {}
    run_fanout(
        list(data.get("targets") or []),
        ctx.root,
        ctx.generation,
        ctx.ledger,
        step=ctx.step.name,
    )
