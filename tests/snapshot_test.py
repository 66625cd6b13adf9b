"""Test dumping and loading registry snapshots."""

import json
from pathlib import Path

import pytest

from ecr_reaper.exceptions import RegistryError
from ecr_reaper.storage.preloaded import PreloadedClient


def test_dump_and_load(preloaded: PreloadedClient, tmp_path: Path) -> None:
    """A dumped snapshot loads back to the same contents."""
    outfile = tmp_path / "dump.json"
    preloaded.debug_dump_repositories(outfile, ["r1", "services/api"])
    dumped = json.loads(outfile.read_text())
    assert dumped["metadata"]["source"] == "preloaded"
    assert set(dumped["repositories"]) == {"r1", "services/api"}
    api = dumped["repositories"]["services/api"]
    assert api["lifecyclePolicy"] == '{"rules": []}'
    assert {"digest": "sha256:api1", "tag": "1.0.0"} in api["images"]

    reloaded = PreloadedClient.from_file(outfile)
    original = preloaded.to_dict()
    assert reloaded.to_dict() == {
        name: original[name] for name in ("r1", "services/api")
    }


def test_dump_only_tagged_manifests(
    preloaded: PreloadedClient, tmp_path: Path
) -> None:
    outfile = tmp_path / "dump.json"
    preloaded.debug_dump_repositories(outfile, ["r2"])
    dumped = json.loads(outfile.read_text())
    assert dumped["repositories"]["r2"]["manifests"] == {}


def test_paged_listing(preloaded: PreloadedClient) -> None:
    """Listings come back whole regardless of page size."""
    listing = preloaded.list_image_ids("r1")
    assert [d for d, _ in listing] == [
        "sha256:idx1",
        "sha256:img1",
        "sha256:img2",
    ]


def test_missing_manifest(preloaded: PreloadedClient) -> None:
    manifests = preloaded.fetch_manifests("r1", ["sha256:idx1", "sha256:x"])
    assert list(manifests) == ["sha256:idx1"]


@pytest.mark.parametrize("content", ["not json", '{"images": []}', "[]"])
def test_not_a_snapshot(tmp_path: Path, content: str) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text(content)
    with pytest.raises(RegistryError):
        PreloadedClient.from_file(bad)


def test_snapshot_missing(tmp_path: Path) -> None:
    with pytest.raises(RegistryError, match="Failed to load snapshot"):
        PreloadedClient.from_file(tmp_path / "nonexistent.json")


def test_deleted_manifest_gone(preloaded: PreloadedClient) -> None:
    """Manifests of deleted images are no longer served."""
    preloaded.batch_delete_images("r1", ["sha256:idx1"])
    assert preloaded.fetch_manifests("r1", ["sha256:idx1"]) == {}
