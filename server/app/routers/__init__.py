"""API routers."""
from __future__ import annotations

from . import machines

__all__ = ["machines"]
