# step_workflows/ffi.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import ArtifactMissingError, FileSystemError, TransformationError
from ..model import Artifact, ArtifactKind, BuildStep, Command
from .header import transform_header

if TYPE_CHECKING:
    from ..config import ProjectConfig
    from ..runner import StepContext


def shared_library_name(lib_name: str, platform: str | None = None) -> str:
    """File name cargo gives a cdylib on the host platform."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return f"{lib_name}.dll"
    if platform == "darwin":
        return f"lib{lib_name}.dylib"
    return f"lib{lib_name}.so"


# ---------------------------------------------------------------------
# Step definition
# ---------------------------------------------------------------------

def ffi_step(config: "ProjectConfig", name: str = "build-ffi") -> BuildStep:
    """
    Release build of the FFI crate plus its public C header.

      cargo build --release  ->  lib<name>.so in the release dir
      cbindgen               ->  raw header in the ffi build dir
      transform-header       ->  public header next to the library
    """
    raw_header = f"{config.ffi_build_dir}/{config.header_name}"
    public_header = f"{config.release_dir}/{config.header_name}"
    library = f"{config.release_dir}/{shared_library_name(config.lib_name)}"

    return BuildStep(
        name=name,
        description="Build the native library and its public header",
        cleans=[config.ffi_build_dir],
        commands=[
            Command(
                name="Build release library",
                run=f"{config.cargo} build --release --package {config.ffi_crate}",
            ),
            Command(
                name="Generate raw header",
                run=(
                    f"{config.cbindgen} --profile release --lang c --crate {config.ffi_crate} "
                    f"--output {raw_header} -- {config.ffi_crate_dir}"
                ),
            ),
            Command(
                name="Write public header",
                kind="transform-header",
                data={"input": raw_header, "output": public_header, "library": library},
            ),
        ],
        artifacts=[
            Artifact(raw_header, ArtifactKind.RAW_HEADER, name),
            Artifact(public_header, ArtifactKind.PUBLIC_HEADER, name),
            Artifact(library, ArtifactKind.NATIVE_SHARED_LIBRARY, name),
        ],
    )


# ---------------------------------------------------------------------
# Step execution
# ---------------------------------------------------------------------

def write_public_header(raw: Path, public: Path, step: str | None = None) -> str:
    if not raw.is_file():
        raise ArtifactMissingError(step, str(raw), expected="raw header from cbindgen")
    try:
        text = raw.read_text(encoding="utf-8")
    except OSError as e:
        raise FileSystemError(step, str(raw), f"could not read raw header: {e}") from e

    try:
        result = transform_header(text)
    except TransformationError as e:
        e.step = e.step or step
        raise

    try:
        public.parent.mkdir(parents=True, exist_ok=True)
        public.write_text(result, encoding="utf-8")
    except OSError as e:
        raise FileSystemError(step, str(public), f"could not write public header: {e}") from e
    return result


def run_transform_header(ctx: "StepContext", command: Command) -> None:
    data = command.data or {}
    library = data.get("library")
    if library and not ctx.path(library).exists():
        raise ArtifactMissingError(ctx.step.name, str(ctx.path(library)), expected="release library")

    write_public_header(ctx.path(data["input"]), ctx.path(data["output"]), step=ctx.step.name)
