"""Append-only activity trail for group and post versions."""

from .service import log_activity, list_activities

__all__ = ["log_activity", "list_activities"]
