"""Unit tests for active notification state-machine guardrails."""

import pytest

from notifyhub.common.state_machine import resolve_requested_status, validate_transition


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition("pending", "read")
    validate_transition("read", "deleted")


def test_repeated_read_is_allowed():
    validate_transition("read", "read")


def test_invalid_transition():
    """Nothing leaves the terminal deleted state."""

    with pytest.raises(ValueError):
        validate_transition("deleted", "read")
    with pytest.raises(ValueError):
        validate_transition("read", "pending")


def test_requested_status_mapping():
    assert resolve_requested_status("read") == "read"
    assert resolve_requested_status("delete") == "deleted"
    with pytest.raises(ValueError):
        resolve_requested_status("archive")
