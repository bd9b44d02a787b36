"""
Entry point for running Stockly as a module.

Usage:
    python -m stockly [command] [options]

This allows Stockly to be executed directly as a Python module,
which is useful for development and testing without installing
the package.
"""

from stockly.cli import main

if __name__ == "__main__":
    main()
