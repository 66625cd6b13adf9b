"""Apply a lifecycle policy to many repositories at once."""

import json
from itertools import chain
from pathlib import Path

import structlog

from ..config import Config
from ..exceptions import PolicyError, PolicyFileError
from ..models.report import RepositoryResult
from ..storage.registry import ContainerRegistryClient
from .fanout import emit_sorted, fan_out


def read_policy_file(path: Path) -> str:
    """Read a lifecycle policy and check that it is a JSON object.

    The text is returned unchanged; the registry does its own validation
    of the policy's contents.
    """
    try:
        text = path.read_text()
    except OSError as exc:
        raise PolicyFileError(
            f"Failed to read policy file {path}: {exc}"
        ) from exc
    try:
        obj = json.loads(text)
    except ValueError as exc:
        raise PolicyFileError(
            f"Invalid JSON in policy file {path}: {exc}"
        ) from exc
    if not isinstance(obj, dict):
        raise PolicyFileError(
            f"Policy file {path} must contain a JSON object, not "
            f"{type(obj).__name__}"
        )
    return text


class LifecyclePolicySetter:
    """Put the same lifecycle policy on a set of repositories."""

    def __init__(
        self,
        registry: ContainerRegistryClient,
        cfg: Config,
        policy_text: str,
    ) -> None:
        self._registry = registry
        self._cfg = cfg
        self._policy_text = policy_text
        self._logger = structlog.get_logger(__name__)

    def _set_one(self, repository: str) -> RepositoryResult:
        result = RepositoryResult(repository=repository)
        if self._cfg.dry_run:
            result.log("[DRY RUN] Would set lifecycle policy")
            return result
        result.log("Setting lifecycle policy")
        try:
            stored = self._registry.put_lifecycle_policy(
                repository, self._policy_text
            )
        except Exception as exc:
            result.error = exc
            result.log(f"Failed to set policy: {exc}", level="error")
            return result
        result.log("Successfully set lifecycle policy")
        self._logger.debug(
            "Stored lifecycle policy", repository=repository, policy=stored
        )
        return result

    def set_policies(self, repositories: list[str]) -> list[RepositoryResult]:
        """Set the policy on every repository given.

        Raises
        ------
        PolicyError
            If any repository could not be updated.  The others are
            updated regardless.
        """
        if not repositories:
            self._logger.info("No repositories to set policies for")
            return []
        results = list(
            fan_out(
                repositories,
                self._set_one,
                max_workers=self._cfg.max_workers,
            ).values()
        )
        emit_sorted(
            self._logger, chain.from_iterable(x.messages for x in results)
        )
        failures = {
            x.repository: x.error for x in results if x.error is not None
        }
        if failures:
            raise PolicyError(failures)
        return results
