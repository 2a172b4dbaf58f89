"""revWave Worker: Celery tasks for sync and campaign dispatch."""

__version__ = "0.1.0"
