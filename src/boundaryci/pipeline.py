# pipeline.py
from __future__ import annotations

from typing import List

from .config import ProjectConfig
from .dsl import sh, test_target, wf
from .model import ArtifactKind, Boundary, BuildStep
from .step_workflows.fanout import fanout_step
from .step_workflows.ffi import ffi_step
from .step_workflows.publish import publish_step
from .step_workflows.wasm import wasm_step


def _artifact(step: BuildStep, kind: ArtifactKind):
    for a in step.artifacts:
        if a.kind == kind:
            return a
    raise ValueError(f"Step '{step.name}' declares no {kind.value} artifact")


def default_steps(config: ProjectConfig) -> List[BuildStep]:
    """
    The standard target graph:

        build-wasm -> test-wasm --+
                                  +--> publish
        build-ffi  -> test-ffi  --+
    """
    build_wasm = wasm_step(config)
    build_ffi = ffi_step(config)

    package = _artifact(build_wasm, ArtifactKind.PACKAGED_MODULE)
    library = _artifact(build_ffi, ArtifactKind.NATIVE_SHARED_LIBRARY)
    header = _artifact(build_ffi, ArtifactKind.PUBLIC_HEADER)

    test_wasm = fanout_step(
        "test-wasm",
        needs=[build_wasm.name],
        targets=[
            test_target(
                "wasm-native",
                Boundary.NATIVE,
                sh("cargo test", f"{config.cargo} test --package {config.wasm_crate}"),
            ),
            test_target(
                "wasm-script",
                Boundary.SCRIPT,
                sh("Smoke test packaged module", f"{config.node} {config.wasm_smoke_test}"),
                artifacts=[package],
                env={"BOUNDARYCI_WASM_PACKAGE": package.path},
            ),
        ],
    )

    c_binary = f"{config.ffi_test_dir}/test_{config.lib_name}.bin"
    test_ffi = fanout_step(
        "test-ffi",
        needs=[build_ffi.name],
        cleans=[config.ffi_test_dir],
        targets=[
            test_target(
                "ffi-native",
                Boundary.NATIVE,
                sh("cargo test", f"{config.cargo} test --package {config.ffi_crate}"),
            ),
            test_target(
                "ffi-script",
                Boundary.SCRIPT,
                sh("Script runtime test", f"{config.script_runtime} run {config.ffi_script_test}"),
                artifacts=[library],
                env={"BOUNDARYCI_FFI_LIBRARY": library.path},
            ),
            test_target(
                "ffi-c",
                Boundary.ABI,
                sh(
                    "Compile C test",
                    f"{config.c_compiler} -o {c_binary} -I{config.release_dir} {config.c_test} "
                    f"-L{config.release_dir} -l{config.lib_name}",
                ),
                sh("Run C test", f"./{c_binary}"),
                artifacts=[header, library],
                library_dirs=[config.release_dir],
            ),
        ],
    )

    publish = publish_step(config, needs=[test_wasm.name, test_ffi.name])

    return wf(build_wasm, build_ffi, test_wasm, test_ffi, publish)
