"""
flowgate - main entry point.

    flowgate run .pipeline.yml --event push:main
    python -m controller.src.main validate .pipeline.yml
"""

from controller.src.cli import app

def main():
    """Main entry point."""
    app()

if __name__ == "__main__":
    main()
