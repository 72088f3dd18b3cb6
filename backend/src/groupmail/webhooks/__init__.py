"""Inbound email webhook."""
