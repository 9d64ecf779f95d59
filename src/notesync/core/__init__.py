"""Core helpers shared by the loader and the sync session."""

from .async_utils import gather_limited, run_sync, run_sync_limited

__all__ = ["gather_limited", "run_sync", "run_sync_limited"]
