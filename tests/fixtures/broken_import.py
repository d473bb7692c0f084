"""Module that cannot be imported."""

raise RuntimeError("module fails at import")
