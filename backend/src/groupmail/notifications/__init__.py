"""Outbound notifications: sender port, templates and Celery delivery."""

from .ports import EmailSenderPort, OutboundEmail

__all__ = ["EmailSenderPort", "OutboundEmail"]
