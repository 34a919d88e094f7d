# step_workflows/publish.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List

from ..errors import BuildError, PublishFailure, ToolInvocationError
from ..model import BuildStep, Command, PublishAttempt, PublishState, PublishTry
from ..ui.console import get_console

if TYPE_CHECKING:
    from ..config import ProjectConfig
    from ..runner import StepContext


@dataclass(frozen=True)
class FallbackPolicy:
    """
    A recognized publish failure and how to retry it.

    Only a failure whose tool output matches `pattern` is retried, once,
    with `extra_args` appended.
    """
    error_class: str
    pattern: str
    extra_args: List[str] = field(default_factory=list)
    warning: str = ""

    def matches(self, error: BaseException) -> bool:
        if not isinstance(error, ToolInvocationError) or error.exit_code is None:
            return False
        return re.search(self.pattern, error.output) is not None


VERIFY_DEFECT = FallbackPolicy(
    error_class="verify-defect",
    pattern=r"failed to verify package tarball",
    extra_args=["--no-verify"],
    warning=(
        "publish verification has a known defect with workspace path dependencies; "
        "a failed verified publish will be retried once with --no-verify"
    ),
)


def publish_step(config: "ProjectConfig", needs: List[str], name: str = "publish") -> BuildStep:
    return BuildStep(
        name=name,
        description=f"Publish {config.publish_crate}",
        needs=list(needs),
        commands=[
            Command(
                name="Publish crate",
                kind="publish",
                run=f"{config.cargo} publish --package {config.publish_crate}",
                data={"policy": config.publish_policy},
            )
        ],
    )


def _with_args(cmd: str, args: List[str]) -> str:
    return " ".join([cmd] + list(args))


def publish_with_fallback(
    cmd: str,
    *,
    cwd: Path,
    policy: FallbackPolicy = VERIFY_DEFECT,
    step: str | None = None,
    dry_run: bool = False,
) -> PublishAttempt:
    """
    NOT_STARTED -> TRYING_VERIFIED -> SUCCEEDED
                                   -> TRYING_UNVERIFIED -> SUCCEEDED | FAILED
                                   -> FAILED
    """
    # Import here to avoid circular import
    from ..runner import run_shell

    console = get_console()
    attempt = PublishAttempt()
    base = _with_args(cmd, ["--dry-run"]) if dry_run else cmd

    console.print_warning(
        policy.warning or f"publish falls back to an unverified attempt on {policy.error_class}"
    )

    attempt.state = PublishState.TRYING_VERIFIED
    try:
        run_shell(step, base, cwd=cwd)
    except BuildError as first:
        attempt.tries.append(PublishTry(verified=True, cmd=base, ok=False, error=str(first)))
        if not policy.matches(first):
            attempt.state = PublishState.FAILED
            raise PublishFailure(step, attempt, first) from first
        attempt.recognized = policy.error_class
    else:
        attempt.tries.append(PublishTry(verified=True, cmd=base, ok=True))
        attempt.state = PublishState.SUCCEEDED
        return attempt

    retry = _with_args(base, policy.extra_args)
    console.print_info(f"Recognized {policy.error_class}; retrying: {retry}")
    attempt.state = PublishState.TRYING_UNVERIFIED
    try:
        run_shell(step, retry, cwd=cwd)
    except BuildError as second:
        attempt.tries.append(PublishTry(verified=False, cmd=retry, ok=False, error=str(second)))
        attempt.state = PublishState.FAILED
        raise PublishFailure(step, attempt, second) from second

    attempt.tries.append(PublishTry(verified=False, cmd=retry, ok=True))
    attempt.state = PublishState.SUCCEEDED
    return attempt


def run_step(ctx: "StepContext", command: Command) -> None:
    data = command.data or {}
    publish_with_fallback(
        command.run,
        cwd=ctx.path(command.cwd or "."),
        policy=data.get("policy") or VERIFY_DEFECT,
        step=ctx.step.name,
        dry_run=ctx.dry_run,
    )
