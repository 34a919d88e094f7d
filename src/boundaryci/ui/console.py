"""Human-readable progress and error output for boundaryci runs."""

from __future__ import annotations

import sys
import traceback
from typing import Dict, List, Optional

OUTPUT_TAIL_LINES = 20


class Console:
    """
    Everything boundaryci prints goes through here.

    Progress goes to stdout; warnings, errors and debug lines go to stderr.
    With debug=True, failures show the full error and tracebacks are kept.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    # ---- run progress ----

    def print_header(self, title: str) -> None:
        print(f"\n{title}\n{'-' * len(title)}")

    def print_run_started(self, target: str, order: List[str], generation: str) -> None:
        print("\nRUN STARTED")
        print(f"Target: {target}")
        print(f"Plan: {' -> '.join(order)}")
        print(f"Generation: {generation}\n")

    def print_step_start(self, name: str) -> None:
        print(f"\nSTEP STARTED: {name}")

    def print_clean(self, path: str) -> None:
        print(f"CLEAN: {path}")

    def print_command(self, name: str) -> None:
        print(f"COMMAND: {name}")

    def print_success(self, name: str) -> None:
        print(f"STATUS: success ({name})")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        output: Optional[str] = None,
    ) -> None:
        """
        Report a failed step.

        Only the first line of `reason` is shown unless debug is on; `output`
        is trimmed to its last OUTPUT_TAIL_LINES lines.
        """
        print(f"STEP FAILED: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if hint:
            print(f"Hint: {hint}")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            print(f"Error: {reason.splitlines()[0] if reason else 'unknown error'}")
        if output:
            print("Output (tail):")
            for line in output.splitlines()[-OUTPUT_TAIL_LINES:]:
                print(f"  {line}")

    def print_target_result(self, name: str, boundary: str, passed: bool) -> None:
        print(f"TARGET [{boundary}] {name}: {'pass' if passed else 'FAIL'}")

    def print_results(self, statuses: Dict[str, str]) -> None:
        rule = "=" * 40
        print(f"\n{rule}\nRESULTS\n{rule}")
        for step, status in statuses.items():
            print(f"  {step}: {'SUCCESS' if status == 'ok' else status.upper()}")

    def print_plan(self, target: str, order: List[str]) -> None:
        print(f"Plan for {target}:")
        for i, name in enumerate(order, start=1):
            print(f"  {i}. {name}")

    def print_info(self, message: str) -> None:
        print(message)

    # ---- stderr ----

    def print_warning(self, message: str) -> None:
        print(f"WARNING: {message}", file=sys.stderr)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[List[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        lines = [f"\nERROR: {title}", message]
        lines.extend(f"  {d}" for d in details or [])
        if suggestion:
            lines.append(f"\n{suggestion}")
        print("\n".join(lines), file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        if self.debug:
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_debug(self, message: str) -> None:
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Process-wide console; the CLI replaces it according to --debug
_console: Optional[Console] = None


def get_console() -> Console:
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    global _console
    _console = console
