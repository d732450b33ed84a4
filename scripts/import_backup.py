#!/usr/bin/env python3
"""Import a backup archive produced by the exporter.

Usage:
  python scripts/import_backup.py --infile backup.tar.gz [--host localhost] [--port 8080]
"""
from __future__ import annotations

from pathlib import Path
import sys

# Ensure src is on the import path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from Restorator.cli import main  # type: ignore  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
