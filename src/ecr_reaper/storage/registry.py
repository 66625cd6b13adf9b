"""Abstract superclass for container registry clients."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog

from ..exceptions import BatchDeleteError, RegistryError
from ..models.image import (
    BATCH_SIZE,
    BatchResult,
    DeletionResult,
    ImageSet,
    chunked,
)
from ..models.manifest import child_digests

type JSONSnapshot = dict[str, Any]


class ContainerRegistryClient(ABC):
    """Collection of methods we expect any registry client to provide.

    Subclasses supply the raw registry calls: listing repositories and
    images, one batched manifest fetch, one batched delete, and putting a
    lifecycle policy.  The batching, manifest interpretation, and dry-run
    handling built on top of those live here, so that every backend
    behaves the same way.

    These are synchronous, and must be safe to call from several threads
    at once; the orchestrator runs one repository per worker thread.
    """

    source = "abstract"

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    @abstractmethod
    def list_repositories(self) -> list[str]:
        """Return the names of every repository, following all pages."""
        ...

    @abstractmethod
    def list_image_ids(
        self, repository: str
    ) -> list[tuple[str, str | None]]:
        """Return `(digest, tag)` for every image, following all pages.

        Any page failing raises `RegistryError`; there is no partial
        result.
        """
        ...

    @abstractmethod
    def fetch_manifests(
        self, repository: str, digests: list[str]
    ) -> dict[str, str]:
        """Return manifest bodies by digest for at most `BATCH_SIZE` digests.

        Digests the registry cannot find are left out.
        """
        ...

    @abstractmethod
    def batch_delete_images(
        self, repository: str, digests: list[str]
    ) -> BatchResult:
        """Delete at most `BATCH_SIZE` digests in one request."""
        ...

    @abstractmethod
    def put_lifecycle_policy(self, repository: str, policy_text: str) -> str:
        """Set a repository's lifecycle policy and return it as stored."""
        ...

    @abstractmethod
    def get_lifecycle_policy(self, repository: str) -> str | None:
        """Return a repository's lifecycle policy, or `None` if unset."""
        ...

    def close(self) -> None:
        """Release any connections held by the client."""

    def list_images(self, repository: str) -> ImageSet:
        """Split a repository's images into tagged and untagged digests."""
        images = ImageSet.from_listing(
            repository, self.list_image_ids(repository)
        )
        self._logger.debug(f"Found {images}")
        return images

    def get_child_digests(
        self, repository: str, digests: list[str]
    ) -> list[str]:
        """Find the child images referenced by a batch of tagged images.

        Parameters
        ----------
        repository
            Repository holding the images.
        digests
            Tagged image digests.  The caller chunks these; no more than
            `BATCH_SIZE` are allowed.

        Returns
        -------
        list of str
            Child digests of every multi-platform manifest in the batch,
            flattened.

        Raises
        ------
        ValueError
            If given more digests than fit in one request.
        ManifestParseError
            If any manifest is not valid JSON.
        RegistryError
            If the request fails.
        """
        if len(digests) > BATCH_SIZE:
            raise ValueError(
                f"At most {BATCH_SIZE} digests may be fetched at once, "
                f"not {len(digests)}"
            )
        if not digests:
            return []
        children: list[str] = []
        for body in self.fetch_manifests(repository, digests).values():
            children.extend(child_digests(body, repository=repository))
        return children

    def delete_images(
        self, repository: str, digests: list[str], *, dry_run: bool
    ) -> DeletionResult:
        """Delete images in batches, tallying what happened.

        Individual images the registry refuses to delete are counted and
        returned, not raised.  A failed request stops the remaining batches
        and raises `BatchDeleteError` carrying the totals so far.
        """
        result = DeletionResult(planned=len(digests), dry_run=dry_run)
        if dry_run:
            self._logger.debug(
                f"Would delete {len(digests)} images from {repository}"
            )
            return result
        for chunk in chunked(digests, BATCH_SIZE):
            self._logger.debug(
                f"Deleting {len(chunk)} images from {repository}"
            )
            try:
                batch = self.batch_delete_images(repository, chunk)
            except RegistryError as exc:
                raise BatchDeleteError(str(exc), result) from exc
            result.add(batch)
        return result

    def debug_dump_repositories(
        self, outputfile: Path, repositories: list[str]
    ) -> None:
        """Write a JSON snapshot of repositories, their images, and the
        manifests of their tagged images.

        The snapshot can be loaded with `PreloadedClient`.
        """
        repos: dict[str, Any] = {}
        for repository in repositories:
            listing = self.list_image_ids(repository)
            tagged = list(dict.fromkeys(d for d, t in listing if t))
            manifests: dict[str, str] = {}
            for chunk in chunked(tagged, BATCH_SIZE):
                manifests.update(self.fetch_manifests(repository, chunk))
            repos[repository] = {
                "images": [{"digest": d, "tag": t} for d, t in listing],
                "manifests": manifests,
                "lifecyclePolicy": self.get_lifecycle_policy(repository),
            }
        dd: JSONSnapshot = {
            "metadata": {"source": self.source},
            "repositories": repos,
        }
        outputfile.write_text(json.dumps(dd, indent=2))
        self._logger.debug(
            f"Dumped {len(repos)} repositor"
            f"{'y' if len(repos) == 1 else 'ies'} to {outputfile}"
        )
