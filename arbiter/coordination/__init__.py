"""Deliberation coordination."""

from arbiter.coordination.coordinator import DecisionCoordinator

__all__ = ["DecisionCoordinator"]
