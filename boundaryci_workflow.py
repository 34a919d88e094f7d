# boundaryci_workflow.py
# Workflow for a solver crate laid out as src/rs-ffi + src/rs-wasm:
# the default target graph plus a `check` target that lints the crates first.
from __future__ import annotations

from boundaryci.config import ProjectConfig
from boundaryci.dsl import sh, step, wf
from boundaryci.pipeline import default_steps


def workflow():
    config = ProjectConfig(
        name="solver",
        c_compiler="cc",
        package_extra_files=["README.md"],
    )
    steps = default_steps(config)

    return wf(
        # Lint job - rustfmt + clippy over the whole workspace
        step(
            "check",
            sh("Format check", "cargo fmt --all -- --check"),
            sh("Clippy", "cargo clippy --workspace --all-targets -- -D warnings"),
            description="Lint the Rust workspace",
        ),
        *steps,
    )
