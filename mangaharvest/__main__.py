"""Module executed when running ``python -m mangaharvest``."""

from __future__ import annotations

from harvest.cli import app


def main() -> None:
    """Run the batch driver command line."""

    app(prog_name="mangaharvest")


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
