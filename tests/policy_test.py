"""Test setting lifecycle policies."""

import json
from pathlib import Path

import pytest

from ecr_reaper.config import Config
from ecr_reaper.exceptions import PolicyError, PolicyFileError
from ecr_reaper.services.policy import (
    LifecyclePolicySetter,
    read_policy_file,
)
from ecr_reaper.storage.preloaded import PreloadedClient


def test_read_policy(policy_file: Path) -> None:
    """The policy text is passed through unchanged."""
    text = read_policy_file(policy_file)
    assert text == policy_file.read_text()
    assert json.loads(text)["rules"][0]["action"]["type"] == "expire"


def test_read_policy_missing(tmp_path: Path) -> None:
    with pytest.raises(PolicyFileError, match="Failed to read"):
        read_policy_file(tmp_path / "nonexistent.json")


@pytest.mark.parametrize(
    ("content", "match"),
    [("{rules: []", "Invalid JSON"), ("[1, 2]", "JSON object")],
)
def test_read_policy_invalid(
    tmp_path: Path, content: str, match: str
) -> None:
    policy = tmp_path / "policy.json"
    policy.write_text(content)
    with pytest.raises(PolicyFileError, match=match):
        read_policy_file(policy)


def test_set_policies(
    counting: PreloadedClient, cfg: Config, policy_file: Path
) -> None:
    text = read_policy_file(policy_file)
    setter = LifecyclePolicySetter(counting, cfg, text)
    results = setter.set_policies(["r1", "r2"])
    assert all(x.ok for x in results)
    assert counting.puts == 2
    assert counting.get_lifecycle_policy("r1") == text
    assert counting.get_lifecycle_policy("r2") == text
    assert counting.get_lifecycle_policy("broken") is None


def test_set_policies_dry_run(
    counting: PreloadedClient, cfg: Config, policy_file: Path
) -> None:
    """A dry run says what it would do and changes nothing."""
    cfg = cfg.model_copy(update={"dry_run": True})
    setter = LifecyclePolicySetter(
        counting, cfg, read_policy_file(policy_file)
    )
    results = setter.set_policies(["r1", "services/api"])
    assert counting.puts == 0
    assert counting.get_lifecycle_policy("r1") is None
    assert counting.get_lifecycle_policy("services/api") == '{"rules": []}'
    assert results[0].messages[0].message == (
        "Repository r1: [DRY RUN] Would set lifecycle policy"
    )


def test_set_policies_failure(
    preloaded: PreloadedClient, cfg: Config
) -> None:
    """Other repositories are updated even when one fails."""
    setter = LifecyclePolicySetter(preloaded, cfg, '{"rules": []}')
    with pytest.raises(PolicyError) as excinfo:
        setter.set_policies(["missing", "r1"])
    assert list(excinfo.value.failures) == ["missing"]
    assert "policy setup" in str(excinfo.value)
    assert preloaded.get_lifecycle_policy("r1") == '{"rules": []}'


def test_set_policies_empty(preloaded: PreloadedClient, cfg: Config) -> None:
    setter = LifecyclePolicySetter(preloaded, cfg, '{"rules": []}')
    assert setter.set_policies([]) == []
