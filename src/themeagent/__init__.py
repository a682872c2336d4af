"""Context assembly and coordination policies for a theme editing agent."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
