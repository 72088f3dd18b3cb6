"""Inbound email parsing and body sanitizing."""

from .headers import Address, ParsedHeaders, extract_names_and_emails, parse_headers
from .payload import InboundEmail
from .sanitizer import sanitize

__all__ = [
    "Address",
    "InboundEmail",
    "ParsedHeaders",
    "extract_names_and_emails",
    "parse_headers",
    "sanitize",
]
