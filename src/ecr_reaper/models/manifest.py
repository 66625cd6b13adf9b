"""Parsing of image manifests for the child images they reference."""

import json
from typing import Any

from ..exceptions import ManifestParseError


def child_digests(body: str, *, repository: str = "") -> list[str]:
    """Return the digests of child images referenced by a manifest.

    Parameters
    ----------
    body
        Raw manifest document.
    repository
        Repository the manifest came from, for error messages.

    Returns
    -------
    list of str
        Digests from the manifest's ``manifests`` array, in order.  A
        single-platform manifest has no such array, and yields nothing.

    Raises
    ------
    ManifestParseError
        If the body is not a JSON object.
    """
    try:
        manifest: Any = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise ManifestParseError(
            f"Failed to parse image manifest for repository {repository}: "
            f"{exc}"
        ) from exc
    if manifest is None:
        return []
    if not isinstance(manifest, dict):
        raise ManifestParseError(
            f"Image manifest for repository {repository} is not a JSON "
            f"object: {type(manifest).__name__}"
        )
    descriptors = manifest.get("manifests")
    if not isinstance(descriptors, list):
        return []
    return [
        d["digest"]
        for d in descriptors
        if isinstance(d, dict) and isinstance(d.get("digest"), str)
    ]
