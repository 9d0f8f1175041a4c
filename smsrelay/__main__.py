"""Entry point for running smsrelay as a module."""

from smsrelay.cli.commands import app

if __name__ == "__main__":
    app()
