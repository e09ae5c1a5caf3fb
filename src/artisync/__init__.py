"""Keep server input directories in sync with remotely built artifacts."""

__version__ = "0.1.0"
