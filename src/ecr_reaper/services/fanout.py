"""Run per-repository work concurrently and collect what it reports."""

import concurrent.futures
from collections.abc import Callable, Iterable

from structlog.stdlib import BoundLogger

from ..models.report import LogEntry


def fan_out[T](
    repositories: list[str],
    work: Callable[[str], T],
    *,
    max_workers: int,
) -> dict[str, T]:
    """Call ``work`` once per repository on a bounded thread pool.

    ``work`` is expected to catch its own failures and report them in its
    return value; repositories beyond ``max_workers`` wait their turn.

    Returns
    -------
    dict
        Results keyed by repository, in the order the repositories were
        given.
    """
    results: dict[str, T] = {}
    repositories = list(dict.fromkeys(repositories))
    if not repositories:
        return results
    workers = min(max_workers, len(repositories))
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=workers, thread_name_prefix="reaper"
    ) as executor:
        future_to_repo = {
            executor.submit(work, repo): repo for repo in repositories
        }
        for future in concurrent.futures.as_completed(future_to_repo):
            results[future_to_repo[future]] = future.result()
    return {repo: results[repo] for repo in repositories}


def emit_sorted(logger: BoundLogger, entries: Iterable[LogEntry]) -> None:
    """Log buffered entries in lexicographic order of their messages."""
    for entry in sorted(entries):
        getattr(logger, entry.level)(entry.message)
