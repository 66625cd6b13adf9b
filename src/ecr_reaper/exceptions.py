"""Exceptions raised by the ECR reaper."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.image import DeletionResult
    from .models.report import RepositoryResult

__all__ = [
    "BatchDeleteError",
    "CleanupError",
    "ManifestParseError",
    "PolicyError",
    "PolicyFileError",
    "ReaperError",
    "RegistryError",
]


class ReaperError(Exception):
    """Base exception for all reaper errors."""


class RegistryError(ReaperError):
    """A call to the container registry failed."""


class ManifestParseError(RegistryError):
    """A manifest body returned by the registry was not valid JSON."""


class BatchDeleteError(RegistryError):
    """A batch delete request failed outright.

    Batches already sent are reflected in ``result``.
    """

    def __init__(self, message: str, result: DeletionResult) -> None:
        super().__init__(message)
        self.result = result


class PolicyFileError(ReaperError):
    """The lifecycle policy file could not be read or is not a JSON object."""


def _describe(failures: dict[str, Exception]) -> str:
    return "; ".join(
        f"{repo}: {exc}" for repo, exc in sorted(failures.items())
    )


class CleanupError(ReaperError):
    """One or more repositories could not be cleaned.

    Parameters
    ----------
    failures
        Map of repository name to the exception that stopped its pipeline.
    results
        Results for every repository processed, successful or not.
    """

    def __init__(
        self,
        failures: dict[str, Exception],
        results: list[RepositoryResult],
    ) -> None:
        self.failures = failures
        self.results = results
        super().__init__(
            f"Encountered errors in {len(failures)} "
            f"repositor{'y' if len(failures) == 1 else 'ies'} during "
            f"cleanup: {_describe(failures)}"
        )


class PolicyError(ReaperError):
    """Lifecycle policy could not be set on one or more repositories."""

    def __init__(self, failures: dict[str, Exception]) -> None:
        self.failures = failures
        super().__init__(
            f"Encountered errors during policy setup: {_describe(failures)}"
        )
