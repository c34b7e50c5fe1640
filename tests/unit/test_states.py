"""Tests for check types, statuses and the transition table."""

import pytest

from compliance_engine.checks.states import (
    RESOLVED_STATUSES,
    TRANSITIONS,
    CheckStatus,
    CheckType,
    ensure_transition,
    is_terminal,
    parse_check_type,
)
from compliance_engine.common.exceptions import ConflictError, ValidationError


class TestTransitions:
    @pytest.mark.parametrize("target", [
        CheckStatus.PASSED, CheckStatus.FAILED, CheckStatus.SKIPPED,
    ])
    def test_pending_moves_forward(self, target):
        ensure_transition(CheckStatus.PENDING, target)

    def test_failed_can_only_be_overridden(self):
        ensure_transition(CheckStatus.FAILED, CheckStatus.OVERRIDE)
        with pytest.raises(ConflictError):
            ensure_transition(CheckStatus.FAILED, CheckStatus.PASSED)

    def test_pending_cannot_be_overridden(self):
        with pytest.raises(ConflictError):
            ensure_transition(CheckStatus.PENDING, CheckStatus.OVERRIDE)

    @pytest.mark.parametrize("status", [
        CheckStatus.PASSED, CheckStatus.SKIPPED, CheckStatus.OVERRIDE,
    ])
    def test_terminal_statuses(self, status):
        assert is_terminal(status)
        for target in CheckStatus:
            with pytest.raises(ConflictError):
                ensure_transition(status, target)

    def test_nothing_returns_to_pending(self):
        assert all(CheckStatus.PENDING not in allowed for allowed in TRANSITIONS.values())

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(CheckStatus)

    def test_resolved_statuses(self):
        assert RESOLVED_STATUSES == {CheckStatus.PASSED, CheckStatus.OVERRIDE}


class TestParseCheckType:
    def test_known(self):
        assert parse_check_type("licensed_zone") is CheckType.LICENSED_ZONE

    def test_unknown_raises_validation(self):
        with pytest.raises(ValidationError, match="Unknown check type"):
            parse_check_type("blood_type")
