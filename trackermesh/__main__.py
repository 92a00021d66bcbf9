"""Entry point for ``python -m trackermesh``."""

from __future__ import annotations

from trackermesh.cli.main import main

if __name__ == "__main__":
    main()
