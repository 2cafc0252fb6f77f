"""Main entry point for the Summadoc CLI.

Usage:
    python -m summadoc --help
    summadoc --help  # If installed via pip/uv
"""

from summadoc.cli import main

if __name__ == "__main__":
    main()
