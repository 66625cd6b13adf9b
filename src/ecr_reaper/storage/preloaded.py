"""Registry client serving a snapshot file from memory.

Snapshots are written by `ContainerRegistryClient.debug_dump_repositories`.
Running against one lets you see what a cleanup would do without touching
the registry, and gives the test suite a registry to work with.
"""

import json
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

from ..exceptions import RegistryError
from ..models.image import BatchResult, DeleteFailure
from .registry import ContainerRegistryClient


@dataclass
class PreloadedRepository:
    """Contents of one repository in a snapshot."""

    images: list[tuple[str, str | None]] = field(default_factory=list)
    manifests: dict[str, str] = field(default_factory=dict)
    lifecycle_policy: str | None = None


class PreloadedClient(ContainerRegistryClient):
    """In-memory registry.

    Deletions and policy changes are applied to the in-memory contents
    only.  Image listings are returned ``page_size`` at a time, the way a
    real registry would.
    """

    source = "preloaded"

    def __init__(
        self,
        repositories: dict[str, PreloadedRepository] | None = None,
        *,
        page_size: int = 1000,
    ) -> None:
        super().__init__()
        self._repositories = repositories or {}
        self._page_size = page_size
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, inputfile: Path, *, page_size: int = 1000) -> Self:
        """Load a snapshot written by ``debug_dump_repositories``."""
        try:
            inp = json.loads(inputfile.read_text())
        except (OSError, ValueError) as exc:
            raise RegistryError(
                f"Failed to load snapshot {inputfile}: {exc}"
            ) from exc
        if not isinstance(inp, dict) or "repositories" not in inp:
            raise RegistryError(f"{inputfile} is not a registry snapshot")
        repos: dict[str, PreloadedRepository] = {}
        for name, obj in inp["repositories"].items():
            repos[name] = PreloadedRepository(
                images=[(x["digest"], x.get("tag")) for x in obj["images"]],
                manifests=dict(obj.get("manifests", {})),
                lifecycle_policy=obj.get("lifecyclePolicy"),
            )
        new_obj = cls(repos, page_size=page_size)
        count = len(repos)
        new_obj._logger.debug(
            f"Ingested {count} repositor{'y' if count == 1 else 'ies'} "
            f"from {inputfile} (source: "
            f"{inp.get('metadata', {}).get('source', 'unknown')})"
        )
        return new_obj

    def _get(self, repository: str) -> PreloadedRepository:
        try:
            return self._repositories[repository]
        except KeyError:
            raise RegistryError(
                f"Repository {repository} does not exist"
            ) from None

    def _pages(
        self, repository: str
    ) -> Iterator[list[tuple[str, str | None]]]:
        repo = self._get(repository)
        with self._lock:
            images = list(repo.images)
        for i in range(0, len(images), self._page_size):
            yield images[i : i + self._page_size]

    def list_repositories(self) -> list[str]:
        return list(self._repositories)

    def list_image_ids(
        self, repository: str
    ) -> list[tuple[str, str | None]]:
        listing: list[tuple[str, str | None]] = []
        for count, page in enumerate(self._pages(repository)):
            self._logger.debug(
                f"Received {repository}: image page {count + 1}"
            )
            listing.extend(page)
        return listing

    def fetch_manifests(
        self, repository: str, digests: list[str]
    ) -> dict[str, str]:
        repo = self._get(repository)
        ret: dict[str, str] = {}
        with self._lock:
            present = {d for d, _ in repo.images}
            for dig in digests:
                if dig in present and dig in repo.manifests:
                    ret[dig] = repo.manifests[dig]
        for dig in digests:
            if dig not in ret:
                self._logger.warning(
                    f"Could not get manifest in {repository}", digest=dig
                )
        return ret

    def batch_delete_images(
        self, repository: str, digests: list[str]
    ) -> BatchResult:
        repo = self._get(repository)
        result = BatchResult()
        with self._lock:
            present = {d for d, _ in repo.images}
            for dig in digests:
                if dig in present:
                    result.deleted.append(dig)
                else:
                    result.failures.append(
                        DeleteFailure(
                            digest=dig,
                            code="ImageNotFound",
                            reason="Requested image not found",
                        )
                    )
            gone = set(result.deleted)
            repo.images = [x for x in repo.images if x[0] not in gone]
            for dig in gone:
                repo.manifests.pop(dig, None)
        return result

    def put_lifecycle_policy(self, repository: str, policy_text: str) -> str:
        repo = self._get(repository)
        with self._lock:
            repo.lifecycle_policy = policy_text
        return policy_text

    def get_lifecycle_policy(self, repository: str) -> str | None:
        return self._get(repository).lifecycle_policy

    def to_dict(self) -> dict[str, Any]:
        """Current contents, in snapshot form."""
        with self._lock:
            return {
                name: {
                    "images": [{"digest": d, "tag": t} for d, t in r.images],
                    "manifests": dict(r.manifests),
                    "lifecyclePolicy": r.lifecycle_policy,
                }
                for name, r in self._repositories.items()
            }
