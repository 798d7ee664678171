from typing import Any, Callable, Optional

from fastapi import BackgroundTasks
from loguru import logger


def run_detached(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Run a fire-and-forget job, logging instead of raising on failure."""
    name = getattr(func, "__qualname__", repr(func))
    try:
        func(*args, **kwargs)
    except Exception as e:
        logger.error(f"Detached task {name} failed: {e}")


class Detached:
    """Submits work whose outcome must not affect the current request.

    With a BackgroundTasks instance the work runs after the response is
    sent; without one (already in the background, scripts) it runs inline.
    """

    def __init__(self, background_tasks: Optional[BackgroundTasks] = None):
        self.background_tasks = background_tasks

    def submit(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(run_detached, func, *args, **kwargs)
        else:
            run_detached(func, *args, **kwargs)
