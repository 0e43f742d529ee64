"""envclone: per-project dev containers with sidecar services in a shared network namespace."""

__version__ = "0.1.0"
