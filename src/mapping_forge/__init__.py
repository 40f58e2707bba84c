"""
mapping-forge — package root

File: src/mapping_forge/__init__.py

Purpose
- Generation-validation-repair loop for design-component mapping artifacts.
- A generator proposes a candidate, a local key-set checker and an external
  structural parser verify it, and failures feed a bounded repair loop.

Import boundary
- No side effects at import time (no config loading, no logging init).
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
