"""Main entry point when executing tiercache as a package.

This allows running the package using python -m tiercache.
"""

from tiercache.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
