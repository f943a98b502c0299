"""Module entrypoint for running pagebinder as ``python -m pagebinder``."""

from __future__ import annotations

from pagebinder.cli import main


if __name__ == "__main__":
    main()
