"""CLI entry point: python -m litrank.cli"""

from litrank.cli import app

if __name__ == "__main__":
    app()
