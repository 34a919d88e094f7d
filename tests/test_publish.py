"""Tests for publishing with a single recognized fallback."""
from pathlib import Path

import pytest

from boundaryci import runner
from boundaryci.errors import PublishFailure, ToolInvocationError
from boundaryci.model import PublishState
from boundaryci.step_workflows.publish import VERIFY_DEFECT, FallbackPolicy, publish_with_fallback

VERIFY_OUTPUT = "error: failed to verify package tarball\n\nCaused by: ..."


class FakeShell:
    """Stands in for run_shell; fails with the queued outputs in order."""

    def __init__(self, *failures):
        self.failures = list(failures)
        self.calls = []

    def __call__(self, step, cmd, *, cwd, env=None):
        self.calls.append(cmd)
        if self.failures:
            failure = self.failures.pop(0)
            if failure is not None:
                raise ToolInvocationError(step, cmd, 101, stderr=failure)
        return None


@pytest.fixture
def shell(monkeypatch):
    def install(*failures):
        fake = FakeShell(*failures)
        monkeypatch.setattr(runner, "run_shell", fake)
        return fake

    return install


class TestPublishWithFallback:
    def test_first_try_succeeds(self, shell):
        fake = shell()
        attempt = publish_with_fallback("cargo publish", cwd=Path("."))
        assert attempt.state == PublishState.SUCCEEDED
        assert fake.calls == ["cargo publish"]
        assert [t.verified for t in attempt.tries] == [True]

    def test_recognized_failure_retries_unverified(self, shell):
        fake = shell(VERIFY_OUTPUT)
        attempt = publish_with_fallback("cargo publish", cwd=Path("."))
        assert attempt.state == PublishState.SUCCEEDED
        assert fake.calls == ["cargo publish", "cargo publish --no-verify"]
        assert attempt.recognized == "verify-defect"
        assert [(t.verified, t.ok) for t in attempt.tries] == [(True, False), (False, True)]

    def test_unrecognized_failure_not_retried(self, shell):
        fake = shell("error: crate version `0.4.1` is already uploaded")
        with pytest.raises(PublishFailure) as exc:
            publish_with_fallback("cargo publish", cwd=Path("."), step="publish")
        assert fake.calls == ["cargo publish"]
        assert exc.value.attempt.state == PublishState.FAILED
        assert exc.value.step == "publish"
        assert isinstance(exc.value.cause, ToolInvocationError)

    def test_fallback_failure_reported(self, shell):
        fake = shell(VERIFY_OUTPUT, "error: network unreachable")
        with pytest.raises(PublishFailure) as exc:
            publish_with_fallback("cargo publish", cwd=Path("."))
        assert len(fake.calls) == 2
        attempt = exc.value.attempt
        assert attempt.state == PublishState.FAILED
        assert len(attempt.tries) == 2
        assert "network unreachable" in str(exc.value.cause.output)

    def test_at_most_two_tries(self, shell):
        fake = shell(VERIFY_OUTPUT, VERIFY_OUTPUT, None)
        with pytest.raises(PublishFailure):
            publish_with_fallback("cargo publish", cwd=Path("."))
        assert len(fake.calls) == 2

    def test_warning_printed_before_first_attempt(self, monkeypatch, capsys):
        fake = FakeShell()

        def check_warning(*args, **kwargs):
            assert "--no-verify" in capsys.readouterr().err
            return fake(*args, **kwargs)

        monkeypatch.setattr(runner, "run_shell", check_warning)
        publish_with_fallback("cargo publish", cwd=Path("."))
        assert fake.calls == ["cargo publish"]

    def test_dry_run(self, shell):
        fake = shell(VERIFY_OUTPUT)
        publish_with_fallback("cargo publish", cwd=Path("."), dry_run=True)
        assert fake.calls == ["cargo publish --dry-run", "cargo publish --dry-run --no-verify"]

    def test_custom_policy(self, shell):
        policy = FallbackPolicy(error_class="index-lag", pattern=r"index is stale", extra_args=["--allow-dirty"])
        fake = shell("warning: index is stale")
        publish_with_fallback("cargo publish", cwd=Path("."), policy=policy)
        assert fake.calls == ["cargo publish", "cargo publish --allow-dirty"]


class TestFallbackPolicy:
    def test_launch_failure_never_matches(self):
        error = ToolInvocationError("publish", "cargo publish", None, stderr=VERIFY_OUTPUT)
        assert not VERIFY_DEFECT.matches(error)

    def test_other_errors_never_match(self):
        assert not VERIFY_DEFECT.matches(RuntimeError("failed to verify package tarball"))
