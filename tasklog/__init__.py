"""CSV-backed persistence for logged work intervals and task groups."""

__version__ = "0.1.0"
