"""
Entry point for running servicebus_demo as a module.

This file enables:
- `python -m servicebus_demo`
- `uv run python -m servicebus_demo`
"""

from __future__ import annotations

from servicebus_demo import main

if __name__ == "__main__":
    main()
