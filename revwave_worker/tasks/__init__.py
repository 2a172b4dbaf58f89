"""revWave Worker Tasks."""

# Import all tasks to register them with Celery
from revwave_worker.tasks import campaigns  # noqa: F401
from revwave_worker.tasks import sync  # noqa: F401
