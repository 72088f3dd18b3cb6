"""Signed action tokens carried by links in outbound email."""
