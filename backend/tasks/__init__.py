"""Command-line jobs: initial allocation and the expiry sweep."""
