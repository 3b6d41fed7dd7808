"""JustServe provider package."""

from services.providers.justserve.adapter import JustServeAdapter

__all__ = ["JustServeAdapter"]
