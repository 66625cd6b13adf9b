"""Test building components."""

from pathlib import Path

import boto3
import pytest

from ecr_reaper.config import Config
from ecr_reaper.exceptions import RegistryError
from ecr_reaper.factory import Factory
from ecr_reaper.storage.ecr import ECRClient
from ecr_reaper.storage.preloaded import PreloadedClient


def test_preloaded(cfg: Config) -> None:
    """A snapshot stands in for the registry, and no AWS calls happen."""
    with Factory.standalone(cfg) as factory:
        registry = factory.create_registry_client()
        assert isinstance(registry, PreloadedClient)
        assert factory.create_registry_client() is registry
        account, _ = factory.identity()
        assert account == "<preloaded>"
        boc = factory.create_reaper()
        assert boc.clean([]) == []


def test_ecr() -> None:
    session = boto3.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="us-east-1",
    )
    factory = Factory(Config(max_attempts=2), session=session)
    registry = factory.create_registry_client()
    assert isinstance(registry, ECRClient)
    setter = factory.create_policy_setter('{"rules": []}')
    assert setter.set_policies([]) == []
    factory.close()


def test_no_region(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing region surfaces as a registry error."""
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "config"))
    for var in ("AWS_REGION", "AWS_DEFAULT_REGION", "AWS_PROFILE"):
        monkeypatch.delenv(var, raising=False)
    factory = Factory(Config())
    with pytest.raises(RegistryError, match="Unable to create ECR client"):
        factory.create_registry_client()
