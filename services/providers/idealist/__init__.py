"""Idealist provider package."""

from services.providers.idealist.adapter import IdealistAdapter

__all__ = ["IdealistAdapter"]
