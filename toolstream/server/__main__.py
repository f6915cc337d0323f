"""
Entry point for running the server as a module.

Usage:
    python -m toolstream.server
    python -m toolstream.server --port 8000 --tools myapp.tools:registry
"""

from .cli import main

if __name__ == "__main__":
    main()
