# runner.py
from __future__ import annotations

import os
import runpy
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List

from .dag import check_ownership, resolve_order
from .errors import TOOL_HINTS, BuildError, FileSystemError, ToolInvocationError
from .generations import DEFAULT_LEDGER, GenerationLedger, new_generation
from .model import BuildStep, Command, RunResult
from .step_workflows import fanout, ffi, publish, wasm
from .ui.console import get_console


# ----------------------------------------------------------------------
# Workflow loading (local file/module)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[BuildStep]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[BuildStep]
      - STEPS = [BuildStep, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"boundaryci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    steps = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        steps = globals_dict["workflow"]()
    elif "STEPS" in globals_dict:
        steps = globals_dict["STEPS"]

    if not isinstance(steps, list) or not all(isinstance(s, BuildStep) for s in steps):
        raise TypeError(
            "Workflow must return/define a List[BuildStep]. "
            "Define workflow() -> List[BuildStep] or STEPS = [BuildStep, ...]."
        )

    return steps


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

@dataclass
class StepContext:
    """Everything a command handler may touch while its step runs."""
    step: BuildStep
    root: Path
    generation: str
    ledger: GenerationLedger
    dry_run: bool = False

    def path(self, rel: str | Path) -> Path:
        return (self.root / rel).resolve()


def run_shell(
    step: str | None,
    cmd: str,
    *,
    cwd: Path,
    env: Dict[str, str] | None = None,
) -> subprocess.CompletedProcess:
    """Run one external command; raise ToolInvocationError unless it exits 0."""
    if not cwd.exists():
        raise FileSystemError(step, str(cwd), f"working directory not found: {cwd}")

    full_env = os.environ.copy()
    full_env.update(env or {})

    try:
        proc = subprocess.run(
            cmd,
            shell=True,
            cwd=str(cwd),
            env=full_env,
            text=True,
            capture_output=True,
        )
    except OSError as e:
        raise ToolInvocationError(step, cmd, None, stderr=str(e)) from e

    if proc.returncode != 0:
        tool = cmd.split()[0] if cmd.split() else ""
        # 127: the shell could not find the program
        hint = TOOL_HINTS.get(tool) if proc.returncode == 127 else None
        raise ToolInvocationError(
            step,
            cmd,
            proc.returncode,
            stdout=(proc.stdout or "")[-4000:],
            stderr=(proc.stderr or "")[-4000:],
            hint=hint,
        )
    return proc


def clean_dir(step: str, root: Path, rel: str) -> Path:
    """Delete and recreate a step-owned output directory."""
    path = (root / rel).resolve()
    if path == root or root not in path.parents:
        raise FileSystemError(step, str(path), f"refusing to clean a directory outside the project: {path}")
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
    except OSError as e:
        raise FileSystemError(step, str(path), f"could not recreate output directory: {e}") from e
    return path


def _run_shell_command(ctx: StepContext, command: Command) -> None:
    env = dict(ctx.step.env)
    env.update(command.env)
    proc = run_shell(ctx.step.name, command.run, cwd=ctx.path(command.cwd or "."), env=env)
    if proc.stdout:
        get_console().print_debug(proc.stdout.rstrip())


HANDLERS: Dict[str, Callable[[StepContext, Command], None]] = {
    "shell": _run_shell_command,
    "transform-header": ffi.run_transform_header,
    "wasm-pack": wasm.run_wasm_pack,
    "check-wasm-outputs": wasm.run_check_outputs,
    "patch-wasm-glue": wasm.run_patch_glue,
    "package-wasm": wasm.run_package,
    "fanout": fanout.run_step,
    "publish": publish.run_step,
}


def _run_step(ctx: StepContext) -> None:
    console = get_console()
    step = ctx.step

    # ---- clean owned outputs ----
    if step.cleans:
        ctx.ledger.forget(step.name)
    for rel in step.cleans:
        console.print_clean(rel)
        clean_dir(step.name, ctx.root, rel)

    # ---- run commands ----
    for command in step.commands:
        handler = HANDLERS.get(command.kind)
        if handler is None:
            raise ValueError(f"[{step.name}] command '{command.name}' has unknown kind: {command.kind!r}")
        console.print_command(command.name)
        handler(ctx, command)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def plan(steps: List[BuildStep], target: str) -> List[str]:
    check_ownership(steps)
    return resolve_order(steps, target)


def run_target(
    steps: List[BuildStep],
    target: str,
    *,
    root: str | Path = ".",
    ledger_path: str | Path = DEFAULT_LEDGER,
    dry_run: bool = False,
) -> RunResult:
    """
    Run `target` and everything it needs, one step at a time.

    Fails fast: the first failing step stops the run and every later
    step is reported as "not-run".
    """
    console = get_console()
    root_p = Path(root).resolve()
    by_name = {s.name: s for s in steps}

    order = plan(steps, target)
    generation = new_generation()
    ledger = GenerationLedger(root_p / ledger_path)
    result = RunResult(
        target=target,
        generation=generation,
        order=order,
        statuses={name: "not-run" for name in order},
    )

    console.print_run_started(target, order, generation)

    for name in order:
        step = by_name[name]
        console.print_step_start(name)
        ctx = StepContext(step=step, root=root_p, generation=generation, ledger=ledger, dry_run=dry_run)
        try:
            _run_step(ctx)
            ledger.stamp(name, generation)
        except BuildError as e:
            result.statuses[name] = "failed"
            result.error = e
            console.print_failure(
                name,
                str(e),
                exit_code=getattr(e, "exit_code", None),
                hint=e.details.get("hint"),
                output=getattr(e, "output", None),
            )
            break
        result.statuses[name] = "ok"
        console.print_success(name)

    return result
