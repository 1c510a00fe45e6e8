"""
Entry point for ``python -m groupcal``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
