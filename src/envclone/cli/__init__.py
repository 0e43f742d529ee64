"""envclone command-line interface."""

from envclone.cli.app import app, main

__all__ = ["app", "main"]
