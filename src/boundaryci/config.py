# config.py
from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List

from .step_workflows.publish import VERIFY_DEFECT, FallbackPolicy

# ---------------------------------------------------------------------
# Project configuration
# ---------------------------------------------------------------------
# Defaults below, overridden by a [tool.boundaryci] table in the
# project's pyproject.toml, overridden by CLI flags:
#
#   [tool.boundaryci]
#   name = "solver"
#   ffi-crate-dir = "src/rs-ffi"
#   release-dir = "target/release"
#   c-compiler = "clang"
#
# Empty strings mean "derive from name".
# ---------------------------------------------------------------------


@dataclass
class ProjectConfig:
    name: str = "solver"

    # crates
    ffi_crate: str = ""
    ffi_crate_dir: str = "src/rs-ffi"
    wasm_crate: str = ""
    wasm_crate_dir: str = "src/rs-wasm"
    publish_crate: str = ""
    lib_name: str = ""
    wasm_stem: str = ""
    header_name: str = ""

    # output layout (relative to the project root)
    ffi_build_dir: str = ".temp/rust-ffi"
    ffi_test_dir: str = ".temp/rust-ffi-test"
    wasm_build_dir: str = ".temp/rust-wasm"
    wasm_package_dir: str = "dist/wasm"
    release_dir: str = "target/release"

    # packaged module metadata
    package_name: str | None = None
    package_version: str | None = None
    package_extra_files: List[str] = field(default_factory=list)

    # external tools
    cargo: str = "cargo"
    wasm_pack: str = "wasm-pack"
    cbindgen: str = "cbindgen"
    c_compiler: str = "gcc"
    script_runtime: str = "bun"
    node: str = "node"

    # conformance test sources
    c_test: str = "src/rs-ffi/test/c/test_solve.c"
    ffi_script_test: str = "src/rs-ffi/test/js/test_solve.ts"
    wasm_smoke_test: str = "src/js/test/wasm-smoke-test.js"

    # publish fallback
    publish_fallback_pattern: str = VERIFY_DEFECT.pattern
    publish_fallback_args: List[str] = field(default_factory=lambda: list(VERIFY_DEFECT.extra_args))

    def __post_init__(self) -> None:
        if not self.ffi_crate:
            self.ffi_crate = f"{self.name}-ffi"
        if not self.wasm_crate:
            self.wasm_crate = f"{self.name}-wasm"
        if not self.publish_crate:
            self.publish_crate = self.name
        if not self.lib_name:
            self.lib_name = self.ffi_crate.replace("-", "_")
        if not self.wasm_stem:
            self.wasm_stem = self.wasm_crate.replace("-", "_")
        if not self.header_name:
            self.header_name = f"{self.lib_name}.h"

    @property
    def publish_policy(self) -> FallbackPolicy:
        return replace(
            VERIFY_DEFECT,
            pattern=self.publish_fallback_pattern,
            extra_args=list(self.publish_fallback_args),
        )


def _field_names() -> Dict[str, str]:
    return {f.name: f.name for f in fields(ProjectConfig)}


def config_from_dict(data: Dict[str, Any]) -> ProjectConfig:
    """Build a config from a TOML-style table; keys may use dashes."""
    known = _field_names()
    kwargs: Dict[str, Any] = {}
    unknown: List[str] = []
    for key, value in data.items():
        name = key.replace("-", "_")
        if name not in known:
            unknown.append(key)
            continue
        kwargs[name] = value
    if unknown:
        raise ValueError(f"Unknown [tool.boundaryci] keys: {sorted(unknown)}. Known: {sorted(known)}")
    return ProjectConfig(**kwargs)


def load_config(root: str | Path = ".", overrides: Dict[str, Any] | None = None) -> ProjectConfig:
    """Defaults <- pyproject.toml [tool.boundaryci] <- overrides."""
    data: Dict[str, Any] = {}
    pyproject = Path(root) / "pyproject.toml"
    if pyproject.is_file():
        with pyproject.open("rb") as f:
            doc = tomllib.load(f)
        data.update(doc.get("tool", {}).get("boundaryci", {}))
    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return config_from_dict(data)
