"""Fan-out / fan-in over a thread pool."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Mapping

from loguru import logger


def fan_out(
    tasks: Mapping[str, Callable[[], Any]],
    max_workers: int | None = None,
    parallel: bool = True,
) -> dict[str, Any]:
    """Run named zero-argument tasks and join their results.

    Parameters
    ----------
    tasks : Mapping[str, Callable[[], Any]]
        Task name to callable. Tasks must not share mutable state.
    max_workers : int | None
        Pool size; defaults to one worker per task.
    parallel : bool
        ``False`` runs the tasks in order on the calling thread.

    Returns
    -------
    dict[str, Any]
        Task name to return value, in the order of ``tasks``.

    Raises
    ------
    Exception
        Re-raises the first exception raised by a task.
    """
    if not tasks:
        return {}
    if not parallel or len(tasks) == 1:
        return {name: task() for name, task in tasks.items()}

    workers = max_workers or len(tasks)
    logger.debug(f"Fanning out {len(tasks)} tasks on {workers} threads")
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {name: executor.submit(task) for name, task in tasks.items()}
        return {name: future.result() for name, future in futures.items()}
