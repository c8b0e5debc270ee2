"""
Header-driven blob watching.
"""

from blobwatch.core.watcher.watcher import BlobWatcher, WatchSummary

__all__ = ["BlobWatcher", "WatchSummary"]
