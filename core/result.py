"""
Result type for provider and client boundaries.

Provider adapters, HTTP clients, the registry and the retry executor return
either a ``Success`` wrapping a value or a ``Failure`` wrapping an error
rather than raising, so the orchestrator can aggregate partial failures
without try/except around every call. Callers branch on
``isinstance(result, Failure)``.

Example:
    >>> outcome = await adapter.search_opportunities(params)
    >>> if isinstance(outcome, Failure):
    ...     errors.append(outcome.error)
    ... else:
    ...     opportunities.extend(outcome.value)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Success[T]:
    """Outcome carrying a value."""

    value: T


@dataclass(frozen=True, slots=True)
class Failure[E]:
    """Outcome carrying an error (usually a ``SearchError``)."""

    error: E


type Result[T, E] = Success[T] | Failure[E]


def success[T](value: T) -> Success[T]:
    """Wrap ``value`` in a Success."""
    return Success(value)


def failure[E](error: E) -> Failure[E]:
    """Wrap ``error`` in a Failure."""
    return Failure(error)
