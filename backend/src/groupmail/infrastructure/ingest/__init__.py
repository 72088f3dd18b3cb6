"""SMTP ingest: receive raw MIME and feed it to the inbound pipeline."""

from .mime_parser import parse_mime_message, to_inbound_email
from .smtp_handler import GroupmailSMTPHandler

__all__ = ["GroupmailSMTPHandler", "parse_mime_message", "to_inbound_email"]
