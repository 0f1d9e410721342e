"""Module entry point: python -m location_guard ..."""

from __future__ import annotations

from location_guard.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
