# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class BuildError(Exception):
    """
    Structured pipeline error with enough context for:
      - clean CLI output
      - identifying the failing step / target
      - debugging without full tracebacks
    """
    kind: str
    step: str | None
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


TOOL_HINTS = {
    "cargo": "Install the Rust toolchain (https://rustup.rs) or fix PATH.",
    "wasm-pack": "Install wasm-pack (cargo install wasm-pack).",
    "cbindgen": "Install cbindgen (cargo install cbindgen).",
    "gcc": "Install a C compiler (gcc or clang) or fix PATH.",
    "cc": "Install a C compiler (gcc or clang) or fix PATH.",
    "clang": "Install clang or fix PATH.",
    "bun": "Install bun (https://bun.sh) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
}


class ToolInvocationError(BuildError):
    """An external process exited non-zero or could not be launched."""

    def __init__(
        self,
        step: str | None,
        cmd: str,
        exit_code: int | None,
        stdout: str = "",
        stderr: str = "",
        hint: str | None = None,
    ):
        details: Dict[str, Any] = {"cmd": cmd}
        if exit_code is not None:
            details["exit_code"] = exit_code
        if hint:
            details["hint"] = hint
        if exit_code is None:
            message = f"could not launch: {cmd}"
        else:
            message = f"command failed (exit={exit_code}): {cmd}"
        super().__init__(kind="tool_invocation", step=step, message=message, details=details)
        self.cmd = cmd
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    @property
    def output(self) -> str:
        return "\n".join(s for s in (self.stdout, self.stderr) if s)


class FileSystemError(BuildError):
    def __init__(self, step: str | None, path: str, message: str):
        super().__init__(kind="filesystem", step=step, message=message, details={"path": path})
        self.path = path


class ArtifactMissingError(BuildError):
    def __init__(self, step: str | None, path: str, expected: str = ""):
        message = f"expected artifact not found: {path}"
        details: Dict[str, Any] = {"path": path}
        if expected:
            details["expected"] = expected
        super().__init__(kind="artifact_missing", step=step, message=message, details=details)
        self.path = path


class TransformationError(BuildError):
    """Input text did not have the shape a rewrite expects."""

    def __init__(self, message: str, step: str | None = None, line: int | None = None, snippet: str = ""):
        details: Dict[str, Any] = {}
        if line is not None:
            details["line"] = line
        if snippet:
            details["snippet"] = snippet
        super().__init__(kind="transformation", step=step, message=message, details=details)
        self.line = line


class VerificationFailure(BuildError):
    """One or more conformance targets failed (each listed by name)."""

    def __init__(self, step: str | None, failures: Dict[str, str], report: Optional[Any] = None):
        names = ", ".join(failures)
        super().__init__(
            kind="verification",
            step=step,
            message=f"{len(failures)} conformance target(s) failed: {names}",
            details=dict(failures),
        )
        self.failures = failures
        self.report = report


class PublishFailure(BuildError):
    def __init__(self, step: str | None, attempt: Any, cause: BaseException):
        tries: List[str] = [
            f"{'verified' if t.verified else 'unverified'}: {'ok' if t.ok else 'failed'}"
            for t in getattr(attempt, "tries", [])
        ]
        super().__init__(
            kind="publish",
            step=step,
            message=f"publish failed after {len(tries)} attempt(s)",
            details={"attempts": "; ".join(tries), "cause": str(cause).split("\n")[0]},
        )
        self.attempt = attempt
        self.cause = cause
