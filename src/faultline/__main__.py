"""Allow ``python -m faultline``."""

from faultline.cli.app import app

if __name__ == "__main__":
    app()
