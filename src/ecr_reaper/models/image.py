"""Model for the information about repository images we care about."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Self

BATCH_SIZE = 100
"""Most image IDs ECR accepts in one batch get or batch delete request."""

type ImageId = dict[str, str]


def chunked(inp: list[str], n: int = BATCH_SIZE) -> Iterator[list[str]]:
    """Split a list into consecutive chunks of at most ``n`` items."""
    if n < 1:
        raise ValueError(f"Chunk size must be positive, not {n}")
    for i in range(0, len(inp), n):
        yield inp[i : i + n]


def to_image_ids(digests: Iterable[str]) -> list[ImageId]:
    return [{"imageDigest": x} for x in digests]


@dataclass
class ImageSet:
    """The images in a single repository, split by whether they are tagged.

    Both lists are free of duplicates, preserve the order in which the
    registry listed them, and are disjoint: a digest carrying any tag at
    all is tagged, even if the registry also listed it without one.
    """

    repository: str
    tagged: list[str] = field(default_factory=list)
    untagged: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"{self.repository}: {len(self.tagged)} tagged, "
            f"{len(self.untagged)} untagged"
        )

    @classmethod
    def from_listing(
        cls, repository: str, listing: Iterable[tuple[str, str | None]]
    ) -> Self:
        """Build from ``(digest, tag)`` pairs.

        ECR lists an image once per tag, so a digest may appear more than
        once.
        """
        tagged: dict[str, None] = {}
        untagged: dict[str, None] = {}
        for digest, tag in listing:
            if tag:
                tagged[digest] = None
            else:
                untagged[digest] = None
        return cls(
            repository=repository,
            tagged=list(tagged),
            untagged=[x for x in untagged if x not in tagged],
        )


@dataclass(frozen=True)
class DeleteFailure:
    """A single image the registry refused to delete."""

    digest: str
    code: str
    reason: str

    def __str__(self) -> str:
        return f"{self.digest}: {self.code} - {self.reason}"


@dataclass
class BatchResult:
    """Outcome of a single batch delete request."""

    deleted: list[str] = field(default_factory=list)
    failures: list[DeleteFailure] = field(default_factory=list)


@dataclass
class DeletionResult:
    """Running totals for deleting images from a repository.

    In a dry run, ``planned`` is the number of images that would have been
    deleted, and nothing is ever deleted or failed.
    """

    planned: int = 0
    deleted: int = 0
    failed: int = 0
    failures: list[DeleteFailure] = field(default_factory=list)
    dry_run: bool = False

    def add(self, batch: BatchResult) -> None:
        self.deleted += len(batch.deleted)
        self.failed += len(batch.failures)
        self.failures.extend(batch.failures)
