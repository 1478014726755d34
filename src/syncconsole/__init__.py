"""SyncConsole - Console for the calculated insight sync pipeline."""

__version__ = "0.1.0"
