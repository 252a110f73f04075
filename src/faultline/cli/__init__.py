"""faultline command-line harness."""

from faultline.cli.app import app, exit_code_for

__all__ = ["app", "exit_code_for"]
