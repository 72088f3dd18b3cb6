"""Domain logic: email parsing, sanitizing and copy-on-write versioning."""
