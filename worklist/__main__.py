#!/usr/bin/env python3
"""Module entrypoint for `worklist`.

Usage (from the repo root):
  - `python3 -m worklist --demo-data --once`
"""

from __future__ import annotations

from .cli import _cli


if __name__ == "__main__":
    raise SystemExit(_cli())
