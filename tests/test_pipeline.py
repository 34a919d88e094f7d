"""Tests for the default target graph."""
import pytest

from boundaryci.config import ProjectConfig
from boundaryci.dag import check_ownership
from boundaryci.model import Boundary
from boundaryci.pipeline import default_steps
from boundaryci.runner import plan


@pytest.fixture
def steps():
    return default_steps(ProjectConfig(name="solver"))


def _targets(steps, name):
    step = next(s for s in steps if s.name == name)
    return {t.name: t for t in step.commands[0].data["targets"]}


class TestDefaultSteps:
    def test_publish_plan(self, steps):
        assert plan(steps, "publish") == ["build-wasm", "build-ffi", "test-wasm", "test-ffi", "publish"]

    def test_test_ffi_plan(self, steps):
        assert plan(steps, "test-ffi") == ["build-ffi", "test-ffi"]

    def test_outputs_have_single_owners(self, steps):
        check_ownership(steps)

    def test_ffi_boundaries(self, steps):
        targets = _targets(steps, "test-ffi")
        assert {n: t.boundary for n, t in targets.items()} == {
            "ffi-native": Boundary.NATIVE,
            "ffi-script": Boundary.SCRIPT,
            "ffi-c": Boundary.ABI,
        }

    def test_c_target_links_against_release_dir(self, steps):
        c = _targets(steps, "test-ffi")["ffi-c"]
        assert c.library_dirs == ["target/release"]
        assert c.commands[0].run == (
            "gcc -o .temp/rust-ffi-test/test_solver_ffi.bin -Itarget/release "
            "src/rs-ffi/test/c/test_solve.c -Ltarget/release -lsolver_ffi"
        )
        assert c.commands[1].run == "./.temp/rust-ffi-test/test_solver_ffi.bin"
        assert {a.kind.value for a in c.artifacts} == {"public-header", "native-shared-library"}

    def test_wasm_script_target_uses_package(self, steps):
        script = _targets(steps, "test-wasm")["wasm-script"]
        assert script.env == {"BOUNDARYCI_WASM_PACKAGE": "dist/wasm"}
        assert [a.producer for a in script.artifacts] == ["build-wasm"]

    def test_publish_command(self, steps):
        publish = steps[-1]
        assert publish.needs == ["test-wasm", "test-ffi"]
        assert publish.commands[0].run == "cargo publish --package solver"
