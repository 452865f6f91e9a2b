"""Run one scenario queue pass; see `scenario_queue.cli` for options."""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure repo root is on sys.path so local imports work when invoked directly.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from scenario_queue.cli import main  # noqa: E402

if __name__ == "__main__":
  main()
