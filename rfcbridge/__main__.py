"""Entry point for ``python -m rfcbridge``."""

from rfcbridge.cli.commands import app

if __name__ == "__main__":
    app(prog_name="rfcbridge")
