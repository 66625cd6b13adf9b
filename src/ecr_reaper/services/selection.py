"""Resolve a repository selection into repository names."""

import re

import structlog

from ..config import RepositorySelection
from ..storage.registry import ContainerRegistryClient


def select_repositories(
    registry: ContainerRegistryClient, selection: RepositorySelection
) -> list[str]:
    """Return the repositories a selection refers to.

    An explicit list of names is returned as given, without asking the
    registry.  A pattern matches anywhere in the name; anchor it if that
    is not what you want.
    """
    logger = structlog.get_logger(__name__)
    if selection.names is not None:
        return list(dict.fromkeys(selection.names))
    repositories = registry.list_repositories()
    if selection.pattern is None:
        return repositories
    pattern = re.compile(selection.pattern)
    matched = [x for x in repositories if pattern.search(x)]
    logger.debug(
        f"{len(matched)} of {len(repositories)} repositories match "
        f"'{selection.pattern}'"
    )
    return matched
