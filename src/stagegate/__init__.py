"""stagegate - staged-change verification pipeline for git pre-commit hooks."""

__version__ = "0.3.0"

__all__ = ["__version__"]
