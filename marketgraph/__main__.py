"""Main entry point when executing marketgraph as a package.

This allows running the package using python -m marketgraph.
"""

from marketgraph.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
