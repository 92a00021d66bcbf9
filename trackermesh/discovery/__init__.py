"""Tracker discovery."""

from __future__ import annotations

from trackermesh.discovery.tracker_registry import (
    TrackerEntry,
    TrackerRegistry,
    TrackerStats,
    default_announce_opts,
)

__all__ = ["TrackerEntry", "TrackerRegistry", "TrackerStats", "default_announce_opts"]
