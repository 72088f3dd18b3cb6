"""groupmail - mailing-list style discussion groups driven entirely by email."""

__version__ = "0.1.0"
