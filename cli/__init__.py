"""CLI package for Lighthouse Google Drive authentication

This package provides the ``lighthouse-auth`` command for signing in,
checking status and signing out.
"""

from cli.main import main

__all__ = [
    "main",
]
