"""Repository access for backstat tasks."""

from .registry import RepoRegistry, ThreadedRepoHandle

__all__ = ["RepoRegistry", "ThreadedRepoHandle"]
