"""Provides orphan image reaping services for container repositories.

An orphan is an untagged image that no tagged image in the same repository
refers to.  Multi-platform builds push one untagged image per platform and a
tagged manifest list pointing at them; those children are not orphans, and
deleting them would break the tagged image.  Anything untagged and not
referenced that way is.

The registry may change between listing a repository and deleting from it.
We do not try to detect that: a re-run recomputes everything from scratch.
"""

import concurrent.futures
from collections.abc import Callable, Iterable
from itertools import chain

import structlog

from ..config import Config
from ..exceptions import BatchDeleteError, CleanupError
from ..models.image import BATCH_SIZE, ImageSet, chunked
from ..models.report import RepositoryResult
from ..storage.registry import ContainerRegistryClient
from .fanout import emit_sorted, fan_out


def _without(digests: list[str], children: Iterable[str]) -> list[str]:
    reachable = set(children)
    return [x for x in digests if x not in reachable]


def find_orphans(
    tagged: list[str],
    untagged: list[str],
    get_children: Callable[[list[str]], list[str]],
    *,
    chunk_size: int = BATCH_SIZE,
    workers: int = 1,
) -> list[str]:
    """Narrow untagged images down to the ones nothing refers to.

    Parameters
    ----------
    tagged
        Tagged image digests, whose manifests may refer to children.
    untagged
        Untagged image digests: the candidates.
    get_children
        Given a chunk of tagged digests, return the child digests their
        manifests refer to.
    chunk_size
        Most tagged digests to pass to ``get_children`` at once.
    workers
        Chunks to look up concurrently.

    Returns
    -------
    list of str
        The members of ``untagged`` not referred to by any tagged image,
        in their original order.

    Notes
    -----
    Each chunk's children are removed from the working set as soon as
    they arrive, so the set only ever shrinks, and neither chunking nor
    completion order affects the result.  Only the calling thread touches
    the working set.
    """
    orphans = list(untagged)
    chunks = list(chunked(tagged, chunk_size))
    if workers <= 1 or len(chunks) <= 1:
        for chunk in chunks:
            orphans = _without(orphans, get_children(chunk))
        return orphans
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(workers, len(chunks))
    ) as executor:
        futures = [executor.submit(get_children, x) for x in chunks]
        for future in concurrent.futures.as_completed(futures):
            orphans = _without(orphans, future.result())
    return orphans


class Reaper:
    """Finds and removes orphan images in a single repository.

    Everything it has to say goes into ``result`` rather than straight to
    the log, so that several reapers can run at once and their output be
    sorted afterward.
    """

    def __init__(
        self,
        registry: ContainerRegistryClient,
        repository: str,
        cfg: Config,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._dry_run = cfg.dry_run
        self._chunk_workers = cfg.chunk_workers
        self._images: ImageSet | None = None
        self._plan: list[str] | None = None
        self.result = RepositoryResult(repository=repository)
        self._logger = structlog.get_logger(__name__).bind(
            repository=repository
        )

    def populate(self) -> ImageSet:
        """List the repository's images."""
        self._images = self._registry.list_images(self._repository)
        self.result.tagged = len(self._images.tagged)
        self.result.untagged = len(self._images.untagged)
        self.result.log(
            f"Found {self.result.tagged} tagged and "
            f"{self.result.untagged} untagged images"
        )
        return self._images

    def plan(self) -> None:
        """Work out which untagged images are orphans."""
        images = self._images or self.populate()
        if images.tagged:
            self.result.log(
                f"Finding children of {len(images.tagged)} tagged images"
            )
        self._plan = find_orphans(
            images.tagged,
            images.untagged,
            lambda x: self._registry.get_child_digests(self._repository, x),
            workers=self._chunk_workers,
        )
        self.result.orphans = list(self._plan)

    def reap(self) -> None:
        """Delete the planned orphans, or say what would be deleted."""
        if self._plan is None:
            self._logger.warning(
                "No plan has been formulated and thus cannot be executed."
            )
            return
        if not self._plan:
            self.result.log("Nothing to delete")
            return
        if self._dry_run:
            self.result.log(
                f"[DRY RUN] Would delete {len(self._plan)} images"
            )
        else:
            self.result.log(f"Deleting {len(self._plan)} images")
        try:
            deletion = self._registry.delete_images(
                self._repository, self._plan, dry_run=self._dry_run
            )
        except BatchDeleteError as exc:
            self.result.deletion = exc.result
            raise
        self.result.deletion = deletion
        for failure in deletion.failures:
            self.result.log(f"Failed to delete {failure}", level="error")
        if not self._dry_run:
            self.result.log(
                f"Deleted {deletion.deleted} images, failed to delete "
                f"{deletion.failed} images"
            )
        self._plan = None

    def run(self) -> RepositoryResult:
        """Populate, plan, and reap, recording any failure in the result."""
        self.result.log("Checking repository")
        try:
            self.populate()
            self.plan()
            self.reap()
        except Exception as exc:
            self.result.error = exc
            self.result.log(f"Failed to clean: {exc}", level="error")
        return self.result


class BuckDharma:
    """Buck Dharma is in charge of all the Reapers.

    Parameters
    ----------
    registry
        Client for the registry holding the repositories.
    cfg
        Reaper configuration; ``dry_run``, ``max_workers``, and
        ``chunk_workers`` are used.
    """

    def __init__(
        self, registry: ContainerRegistryClient, cfg: Config
    ) -> None:
        self._registry = registry
        self._cfg = cfg
        self._logger = structlog.get_logger(__name__)
        self.results: list[RepositoryResult] = []

    def _reap_one(self, repository: str) -> RepositoryResult:
        return Reaper(self._registry, repository, self._cfg).run()

    def clean(self, repositories: list[str]) -> list[RepositoryResult]:
        """Remove orphan images from every repository given.

        Each repository is handled independently; one failing does not
        stop the others.

        Returns
        -------
        list of RepositoryResult
            One per repository, in the order given.

        Raises
        ------
        CleanupError
            If any repository failed.  The exception carries every
            repository's result, not just the failures.
        """
        self.results = []
        if not repositories:
            self._logger.info("No repositories to clean")
            return self.results
        by_repo = fan_out(
            repositories, self._reap_one, max_workers=self._cfg.max_workers
        )
        self.results = list(by_repo.values())
        emit_sorted(
            self._logger, chain.from_iterable(x.messages for x in self.results)
        )
        failures = {
            x.repository: x.error for x in self.results if x.error is not None
        }
        if failures:
            raise CleanupError(failures, self.results)
        return self.results

    def report(self) -> None:
        """Print a summary of the last cleanup."""
        if not self.results:
            print("No repositories were cleaned.")
            return
        dry = " (dry run)" if self._cfg.dry_run else ""
        headline = f"Orphan image cleanup{dry}:"
        print(headline)
        print("-" * len(headline))
        width = max(len(x.repository) for x in self.results)
        for res in self.results:
            deleted = res.deletion.deleted if res.deletion else 0
            failed = res.deletion.failed if res.deletion else 0
            print(
                res.repository,
                " " * (width - len(res.repository)),
                f"tagged={res.tagged} untagged={res.untagged} "
                f"orphans={len(res.orphans)} deleted={deleted} "
                f"failed={failed} [{res.status()}]",
            )
        print("\n")
