"""Test fixtures for ECR orphan image reaper."""

from collections.abc import Iterator
from pathlib import Path

import boto3
import pytest
from botocore.stub import Stubber

from ecr_reaper.config import Config
from ecr_reaper.exceptions import RegistryError
from ecr_reaper.models.image import BatchResult
from ecr_reaper.storage.ecr import ECRClient
from ecr_reaper.storage.preloaded import PreloadedClient

SUPPORT_DIR = Path(__file__).parent / "support"


class FailingClient(PreloadedClient):
    """Preloaded registry whose listing fails for chosen repositories."""

    def __init__(self, *args, fail: set[str], **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail = fail

    def list_image_ids(
        self, repository: str
    ) -> list[tuple[str, str | None]]:
        if repository in self.fail:
            raise RegistryError(f"Access denied to {repository}")
        return super().list_image_ids(repository)


class CountingClient(PreloadedClient):
    """Preloaded registry that counts calls which change the registry."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.deletes = 0
        self.puts = 0

    def batch_delete_images(
        self, repository: str, digests: list[str]
    ) -> BatchResult:
        self.deletes += 1
        return super().batch_delete_images(repository, digests)

    def put_lifecycle_policy(self, repository: str, policy_text: str) -> str:
        self.puts += 1
        return super().put_lifecycle_policy(repository, policy_text)


@pytest.fixture
def snapshot_file() -> Path:
    """Registry snapshot with a few interesting repositories."""
    return SUPPORT_DIR / "registry.contents.json"


@pytest.fixture
def policy_file() -> Path:
    """Lifecycle policy expiring old untagged images."""
    return SUPPORT_DIR / "policy.json"


@pytest.fixture
def cfg(snapshot_file: Path) -> Config:
    """Config pointing at the snapshot."""
    return Config(max_workers=4, input_file=snapshot_file)


@pytest.fixture
def preloaded(snapshot_file: Path) -> PreloadedClient:
    """In-memory registry, listing two images per page."""
    return PreloadedClient.from_file(snapshot_file, page_size=2)


@pytest.fixture
def counting(snapshot_file: Path) -> CountingClient:
    """In-memory registry that counts mutating calls."""
    base = PreloadedClient.from_file(snapshot_file)
    return CountingClient(base._repositories)


@pytest.fixture
def failing(snapshot_file: Path) -> FailingClient:
    """In-memory registry where listing r2 fails."""
    base = PreloadedClient.from_file(snapshot_file)
    return FailingClient(base._repositories, fail={"r2"})


@pytest.fixture
def ecr_stub() -> Iterator[tuple[ECRClient, Stubber]]:
    """ECR client backed by a botocore stubber."""
    client = boto3.client(
        "ecr",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield ECRClient(Config(), client=client), stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def test_config(tmp_path: Path, snapshot_file: Path) -> Path:
    """YAML configuration file using the snapshot."""
    config = (SUPPORT_DIR / "config.yaml").read_text()
    new_config = tmp_path / "config.yaml"
    new_config.write_text(f"{config}inputFile: {snapshot_file}\n")
    return new_config
