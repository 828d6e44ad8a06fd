"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from pushdeploy.models.deployment import (
    TRANSITIONS,
    DeploymentAttempt,
    DeploymentPhase,
    DeploymentResult,
)
from pushdeploy.models.trace import StepStatus
from pushdeploy.models.webhook import PushEvent


class TestDeploymentAttempt:
    """Tests for DeploymentAttempt phase bookkeeping."""

    @pytest.fixture
    def attempt(self) -> DeploymentAttempt:
        return DeploymentAttempt(id="webhook-1", project="demo", commit="abc123de")

    def test_initial_state(self, attempt: DeploymentAttempt):
        assert attempt.phase == DeploymentPhase.VALIDATING
        assert attempt.visited == [DeploymentPhase.VALIDATING]
        assert attempt.success is None

    def test_forward_move(self, attempt: DeploymentAttempt):
        attempt.advance(DeploymentPhase.BUILDING)

        assert attempt.phase == DeploymentPhase.BUILDING
        assert attempt.visited == [DeploymentPhase.VALIDATING, DeploymentPhase.BUILDING]

    def test_skipping_a_phase_is_illegal(self, attempt: DeploymentAttempt):
        with pytest.raises(ValueError, match="Illegal phase transition"):
            attempt.advance(DeploymentPhase.MONITORING)

    def test_terminal_sets_outcome(self, attempt: DeploymentAttempt):
        attempt.advance(DeploymentPhase.FAILED)

        assert attempt.success is False
        assert attempt.completed_at is not None
        with pytest.raises(ValueError):
            attempt.advance(DeploymentPhase.BUILDING)

    def test_first_failure_is_kept(self, attempt: DeploymentAttempt):
        attempt.fail("deploy", "exit 1")
        attempt.fail("rollback-verified", "still down")

        assert attempt.failed_step == "deploy"
        assert attempt.error == "exit 1"

    def test_record_appends(self, attempt: DeploymentAttempt):
        attempt.record("validate", StepStatus.COMPLETED, {"command": "node --version"})
        attempt.record("build", StepStatus.FAILED)

        assert [s.name for s in attempt.steps] == ["validate", "build"]

    def test_transition_table_is_forward_only(self):
        """Rolling back can only fail; nothing leads back to validating."""
        assert TRANSITIONS[DeploymentPhase.ROLLING_BACK] == {DeploymentPhase.FAILED}
        for targets in TRANSITIONS.values():
            assert DeploymentPhase.VALIDATING not in targets
        for phase in (DeploymentPhase.SUCCEEDED, DeploymentPhase.FAILED):
            assert TRANSITIONS[phase] == frozenset()

    def test_result_from_attempt(self, attempt: DeploymentAttempt):
        for phase in (
            DeploymentPhase.BUILDING,
            DeploymentPhase.STAGING,
            DeploymentPhase.PRE_PRODUCTION_CHECKS,
            DeploymentPhase.APPLYING_PRODUCTION,
            DeploymentPhase.MONITORING,
            DeploymentPhase.SUCCEEDED,
        ):
            attempt.advance(phase)

        result = DeploymentResult.from_attempt(attempt)

        assert result.success is True
        assert result.attempt_id == "webhook-1"
        assert len(result.phases) == 7
        assert result.duration_ms >= 0


class TestPushEvent:
    """Tests for push payload parsing."""

    def test_parse(self):
        event = PushEvent.model_validate(
            {
                "ref": "refs/heads/main",
                "repository": {"name": "demo", "full_name": "acme/demo"},
                "head_commit": {"id": "abc123de", "message": "fix", "author": {"name": "Dana"}},
                "sender": {"login": "dana"},
            }
        )

        assert event.repository_name == "demo"
        assert event.branch == "main"
        assert event.commit == "abc123de"

    def test_full_name_fallback(self):
        event = PushEvent.model_validate(
            {"ref": "refs/heads/main", "after": "ffff", "repository": {"full_name": "acme/api"}}
        )

        assert event.repository_name == "api"
        assert event.commit == "ffff"

    def test_missing_ref_is_invalid(self):
        with pytest.raises(ValidationError):
            PushEvent.model_validate({"repository": {"name": "demo"}})
