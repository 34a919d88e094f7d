# step_workflows/wasm.py
from __future__ import annotations

import json
import os
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from ..errors import ArtifactMissingError, FileSystemError, TransformationError
from ..model import Artifact, ArtifactKind, BuildStep, Command

if TYPE_CHECKING:
    from ..config import ProjectConfig
    from ..runner import StepContext


# ---------------------------------------------------------------------
# Step definition
# ---------------------------------------------------------------------

def wasm_step(config: "ProjectConfig", name: str = "build-wasm") -> BuildStep:
    """
    wasm-pack build -> glue patch -> packaged module.

    Both the raw build dir and the package dir are owned (and wiped) here.
    """
    stem = config.wasm_stem
    build_dir = config.wasm_build_dir
    package_dir = config.wasm_package_dir

    return BuildStep(
        name=name,
        description="Build and package the WebAssembly module",
        cleans=[build_dir, package_dir],
        commands=[
            Command(
                name="Compile wasm module",
                kind="wasm-pack",
                run=f"{config.wasm_pack} build --release --target web",
                data={"crate_dir": config.wasm_crate_dir, "build_dir": build_dir},
            ),
            Command(
                name="Check compiler outputs",
                kind="check-wasm-outputs",
                data={"build_dir": build_dir, "stem": stem},
            ),
            Command(
                name="Patch glue module loading",
                kind="patch-wasm-glue",
                data={"glue": f"{build_dir}/{stem}.js", "stem": stem},
            ),
            Command(
                name="Compose package",
                kind="package-wasm",
                data={
                    "build_dir": build_dir,
                    "package_dir": package_dir,
                    "stem": stem,
                    "name": config.package_name,
                    "version": config.package_version,
                    "extra_files": list(config.package_extra_files),
                },
            ),
        ],
        artifacts=[
            Artifact(f"{build_dir}/{stem}_bg.wasm", ArtifactKind.BINARY_MODULE, name),
            Artifact(package_dir, ArtifactKind.PACKAGED_MODULE, name),
        ],
    )


def wasm_pack_command(root: Path, command: Command) -> str:
    """
    Full wasm-pack invocation, run from the project root.

    wasm-pack resolves --out-dir against the crate directory, so the build
    dir is passed relative to the resolved crate.
    """
    data = command.data or {}
    crate = (root / data["crate_dir"]).resolve()
    out_dir = os.path.relpath((root / data["build_dir"]).resolve(), crate)
    return f"{command.run} --out-dir {out_dir} {data['crate_dir']}"


def run_wasm_pack(ctx: "StepContext", command: Command) -> None:
    # Import here to avoid circular import
    from ..runner import run_shell

    env = dict(ctx.step.env)
    env.update(command.env)
    run_shell(ctx.step.name, wasm_pack_command(ctx.root, command), cwd=ctx.root, env=env)


# ---------------------------------------------------------------------
# Compiler outputs
# ---------------------------------------------------------------------

def expected_outputs(stem: str) -> List[str]:
    return [f"{stem}_bg.wasm", f"{stem}.js"]


def check_outputs(build_dir: Path, stem: str, step: str | None = None) -> None:
    for filename in expected_outputs(stem):
        path = build_dir / filename
        if not path.is_file():
            raise ArtifactMissingError(step, str(path), expected=f"wasm-pack output {filename}")


def run_check_outputs(ctx: "StepContext", command: Command) -> None:
    data = command.data or {}
    check_outputs(ctx.path(data["build_dir"]), data["stem"], step=ctx.step.name)


# ---------------------------------------------------------------------
# Glue patch
# ---------------------------------------------------------------------
# `--target web` glue falls back to
#     new URL('<stem>_bg.wasm', import.meta.url)
# when init() is called without an explicit source. The bare file name
# is rewritten to a "./"-prefixed relative specifier.

def _default_url_pattern(stem: str) -> re.Pattern:
    return re.compile(
        r"new URL\((['\"])" + re.escape(f"{stem}_bg.wasm") + r"\1,\s*import\.meta\.url\)"
    )


def patch_glue(source: str, stem: str) -> str:
    pattern = _default_url_pattern(stem)
    matches = pattern.findall(source)
    if len(matches) != 1:
        raise TransformationError(
            f"expected exactly one default wasm URL in glue code, found {len(matches)}",
            snippet=f"new URL('{stem}_bg.wasm', import.meta.url)",
        )
    return pattern.sub(f'new URL("./{stem}_bg.wasm", import.meta.url)', source)


def run_patch_glue(ctx: "StepContext", command: Command) -> None:
    data = command.data or {}
    glue = ctx.path(data["glue"])
    if not glue.is_file():
        raise ArtifactMissingError(ctx.step.name, str(glue), expected="wasm-pack glue module")

    try:
        patched = patch_glue(glue.read_text(encoding="utf-8"), data["stem"])
    except TransformationError as e:
        e.step = ctx.step.name
        e.details["path"] = str(glue)
        raise

    try:
        glue.write_text(patched, encoding="utf-8")
    except OSError as e:
        raise FileSystemError(ctx.step.name, str(glue), f"could not write patched glue: {e}") from e


# ---------------------------------------------------------------------
# Package composition
# ---------------------------------------------------------------------

def package_manifest(
    stem: str,
    files: List[str],
    generated: Dict[str, Any] | None = None,
    name: str | None = None,
    version: str | None = None,
) -> Dict[str, Any]:
    generated = generated or {}
    pkg_name = name or generated.get("name") or stem.replace("_", "-")
    pkg_version = version or generated.get("version") or "0.0.0"

    manifest: Dict[str, Any] = {
        "name": pkg_name,
        "version": pkg_version,
        "type": "module",
        "main": f"{stem}.js",
        "exports": {".": {"import": f"./{stem}.js"}},
        "files": sorted(files),
        "sideEffects": False,
    }
    if f"{stem}.d.ts" in files:
        manifest["types"] = f"{stem}.d.ts"
        manifest["exports"]["."]["types"] = f"./{stem}.d.ts"
    for key in ("description", "license", "repository"):
        if key in generated:
            manifest[key] = generated[key]
    return manifest


def compose_package(
    build_dir: Path,
    package_dir: Path,
    stem: str,
    *,
    name: str | None = None,
    version: str | None = None,
    extra_files: List[Path] | None = None,
    step: str | None = None,
) -> Path:
    """
    Copy the patched glue, the wasm binary and typings into package_dir
    and write package.json. Output depends only on the inputs.
    """
    check_outputs(build_dir, stem, step=step)

    wanted = expected_outputs(stem) + sorted(p.name for p in build_dir.glob("*.d.ts"))
    sources = [build_dir / f for f in wanted]
    for extra in extra_files or []:
        if not extra.is_file():
            raise ArtifactMissingError(step, str(extra), expected="auxiliary package file")
        sources.append(extra)

    generated: Dict[str, Any] = {}
    generated_path = build_dir / "package.json"
    if generated_path.is_file():
        try:
            generated = json.loads(generated_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise TransformationError(f"wasm-pack package.json is not valid JSON: {e}", step=step)

    try:
        package_dir.mkdir(parents=True, exist_ok=True)
        for src in sources:
            shutil.copyfile(src, package_dir / src.name)
        manifest = package_manifest(
            stem,
            [s.name for s in sources],
            generated=generated,
            name=name,
            version=version,
        )
        (package_dir / "package.json").write_text(
            json.dumps(manifest, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
    except OSError as e:
        raise FileSystemError(step, str(package_dir), f"could not compose package: {e}") from e

    return package_dir


def run_package(ctx: "StepContext", command: Command) -> None:
    data = command.data or {}
    compose_package(
        ctx.path(data["build_dir"]),
        ctx.path(data["package_dir"]),
        data["stem"],
        name=data.get("name"),
        version=data.get("version"),
        extra_files=[ctx.path(p) for p in data.get("extra_files") or []],
        step=ctx.step.name,
    )
