# marks package; keep empty to avoid circular imports
from __future__ import annotations

__all__: list[str] = [
    "config",
    "deps",
    "logging_setup",
    "main",
]
__version__ = "0.3.0"
