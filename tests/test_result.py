"""Tests for Result pattern implementation."""

from __future__ import annotations

import dataclasses

import pytest

from core.result import Failure, Success, failure, success
from services.providers.errors import network_error


class TestResultTypes:
    """Tests for Success and Failure."""

    def test_success_holds_value(self) -> None:
        """Success exposes its value."""
        assert Success(["opp-1", "opp-2"]).value == ["opp-1", "opp-2"]

    def test_failure_holds_error(self) -> None:
        """Failure exposes its error."""
        error = network_error("JustServe", "connection refused")

        assert Failure(error).error is error

    def test_immutable(self) -> None:
        """Outcomes cannot be modified after creation."""
        result = Success(1)

        with pytest.raises(dataclasses.FrozenInstanceError):
            result.value = 2  # type: ignore[misc]

    def test_equality(self) -> None:
        """Outcomes compare by content."""
        assert Success(3) == Success(3)
        assert Failure("boom") != Success("boom")


class TestHelpers:
    """Tests for success() and failure() helpers."""

    def test_success_helper(self) -> None:
        """success() wraps a value."""
        result = success(42)

        assert isinstance(result, Success)
        assert result.value == 42

    def test_failure_helper(self) -> None:
        """failure() wraps an error."""
        error = network_error("VolunteerHub")
        result = failure(error)

        assert isinstance(result, Failure)
        assert result.error is error

    def test_isinstance_dispatch(self) -> None:
        """Callers branch on isinstance(result, Failure)."""

        def describe(result: Success[list[str]] | Failure[str]) -> str:
            if isinstance(result, Failure):
                return f"failed: {result.error}"
            return f"{len(result.value)} results"

        assert describe(success(["a", "b"])) == "2 results"
        assert describe(failure("timeout")) == "failed: timeout"
