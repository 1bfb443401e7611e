"""Allow running as ``python -m qic``."""

from qic.cli.main import app

if __name__ == "__main__":
    app()
