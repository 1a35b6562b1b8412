"""
Entry point: python -m asset_relocator
"""
from asset_relocator.cli.cli import app

if __name__ == "__main__":
    app()
