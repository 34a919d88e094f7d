"""Tests for conformance fanout across consumption boundaries."""
import os

import pytest

from boundaryci.dsl import artifact, sh, step, test_target, wf
from boundaryci.errors import VerificationFailure
from boundaryci.generations import GenerationLedger
from boundaryci.model import Boundary
from boundaryci.runner import run_target
from boundaryci.step_workflows.fanout import fanout_step, loader_path_var, run_fanout, target_env

from helpers import py, touch

LIB = "target/release/libsolver_ffi.so"


def _ok(name="ok"):
    return sh(name, "true")


def _marker(name):
    return sh(f"mark {name}", touch(f"ran/{name}"))


def _build():
    return step("build-ffi", sh("build", touch(LIB)), artifacts=[artifact(LIB, "native-shared-library", "build-ffi")])


class TestFanout:
    def test_all_targets_pass(self, project):
        lib = artifact(LIB, "native-shared-library", "build-ffi")
        steps = wf(
            _build(),
            fanout_step(
                "test-ffi",
                needs=["build-ffi"],
                targets=[
                    test_target("ffi-native", Boundary.NATIVE, _ok()),
                    test_target("ffi-script", Boundary.SCRIPT, _ok(), artifacts=[lib]),
                    test_target("ffi-c", Boundary.ABI, _ok(), artifacts=[lib]),
                ],
            ),
        )
        result = run_target(steps, "test-ffi", root=project)
        assert result.ok

    def test_failing_target_does_not_stop_siblings(self, project):
        steps = wf(
            _build(),
            fanout_step(
                "test-ffi",
                needs=["build-ffi"],
                targets=[
                    test_target("ffi-native", Boundary.NATIVE, _marker("native")),
                    test_target("ffi-c", Boundary.ABI, sh("link", "exit 1")),
                    test_target("ffi-script", Boundary.SCRIPT, _marker("script")),
                ],
            ),
        )

        result = run_target(steps, "test-ffi", root=project)

        assert result.failed_step == "test-ffi"
        assert isinstance(result.error, VerificationFailure)
        assert list(result.error.failures) == ["ffi-c"]
        assert "ffi-c" in str(result.error)
        assert (project / "ran/native").exists()
        assert (project / "ran/script").exists()

        report = result.error.report
        assert [o.target for o in report.outcomes] == ["ffi-native", "ffi-c", "ffi-script"]
        assert [o.passed for o in report.outcomes] == [True, False, True]
        assert report.generation == result.generation

    def test_every_failure_is_named(self, project):
        targets = [
            test_target("a", Boundary.NATIVE, sh("fail", "exit 1")),
            test_target("b", Boundary.SCRIPT, sh("fail", "exit 2")),
        ]
        ledger = GenerationLedger(project / "ledger.json")
        with pytest.raises(VerificationFailure) as exc:
            run_fanout(targets, project, "gen-1", ledger, step="test")
        assert sorted(exc.value.failures) == ["a", "b"]

    def test_duplicate_target_names(self, project):
        targets = [test_target("a", Boundary.NATIVE, _ok()), test_target("a", Boundary.ABI, _ok())]
        with pytest.raises(ValueError, match="Duplicate"):
            run_fanout(targets, project, "gen-1", GenerationLedger(project / "ledger.json"))


class TestArtifactGenerations:
    def test_missing_artifact_fails_only_its_target(self, project):
        lib = artifact(LIB, "native-shared-library", "build-ffi")
        targets = [
            test_target("ffi-native", Boundary.NATIVE, _marker("native")),
            test_target("ffi-c", Boundary.ABI, _marker("c"), artifacts=[lib]),
        ]

        with pytest.raises(VerificationFailure) as exc:
            run_fanout(targets, project, "gen-1", GenerationLedger(project / "ledger.json"), step="test-ffi")

        assert list(exc.value.failures) == ["ffi-c"]
        assert "missing native-shared-library" in exc.value.failures["ffi-c"]
        assert (project / "ran/native").exists()
        assert not (project / "ran/c").exists()

    def test_stale_artifact_rejected(self, project):
        (project / "target/release").mkdir(parents=True)
        (project / LIB).write_text("old build")
        ledger = GenerationLedger(project / "ledger.json")
        ledger.stamp("build-ffi", "gen-old")

        lib = artifact(LIB, "native-shared-library", "build-ffi")
        targets = [
            test_target("ffi-c", Boundary.ABI, _marker("c"), artifacts=[lib]),
            test_target("ffi-native", Boundary.NATIVE, _marker("native")),
        ]

        with pytest.raises(VerificationFailure) as exc:
            run_fanout(targets, project, "gen-new", ledger)
        assert list(exc.value.failures) == ["ffi-c"]
        assert "stale" in exc.value.failures["ffi-c"]
        assert "gen-old" in exc.value.failures["ffi-c"]
        assert not (project / "ran/c").exists()
        assert (project / "ran/native").exists()

    def test_current_generation_accepted(self, project):
        (project / "target/release").mkdir(parents=True)
        (project / LIB).write_text("new build")
        ledger = GenerationLedger(project / "ledger.json")
        ledger.stamp("build-ffi", "gen-new")

        lib = artifact(LIB, "native-shared-library", "build-ffi")
        targets = [test_target("ffi-c", Boundary.ABI, _ok(), artifacts=[lib])]
        report = run_fanout(targets, project, "gen-new", ledger)
        assert report.passed


class TestLoaderEnvironment:
    def test_library_dir_prepended(self, project):
        target = test_target("ffi-c", Boundary.ABI, _ok(), library_dirs=["target/release"])
        var = loader_path_var()
        env = target_env(target, project, base={var: "/usr/lib"})
        expected = str((project / "target/release").resolve())
        assert env[var] == os.pathsep.join([expected, "/usr/lib"])

    def test_no_library_dirs_no_override(self, project):
        target = test_target("ffi-native", Boundary.NATIVE, _ok(), env={"A": "1"})
        assert target_env(target, project, base={}) == {"A": "1"}

    def test_loader_path_visible_to_target_only(self, project, monkeypatch):
        var = loader_path_var()
        monkeypatch.setenv(var, "/usr/lib")
        check = py(
            "import os, sys; "
            f"sys.exit(0 if os.environ[{var!r}].split(os.pathsep)[0].endswith('release') else 1)"
        )
        targets = [test_target("ffi-c", Boundary.ABI, sh("check", check), library_dirs=["target/release"])]

        run_fanout(targets, project, "gen-1", GenerationLedger(project / "ledger.json"))

        assert os.environ[var] == "/usr/lib"

    @pytest.mark.parametrize(
        "platform,var",
        [("linux", "LD_LIBRARY_PATH"), ("darwin", "DYLD_LIBRARY_PATH"), ("win32", "PATH")],
    )
    def test_loader_path_var(self, platform, var):
        assert loader_path_var(platform) == var
