"""Configuration for the ECR reaper."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Any, Self

import yaml
from pydantic import (
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from safir.pydantic import CamelCaseModel


def _empty_str_is_none(inp: Any) -> Any:
    if isinstance(inp, str) and inp == "":
        return None
    return inp


def _split_names(inp: Any) -> Any:
    # Accept the comma-separated form the command line uses.
    if isinstance(inp, str):
        inp = inp.split(",")
    if isinstance(inp, list):
        names = [x.strip() for x in inp if isinstance(x, str) and x.strip()]
        return names or None
    return inp


class RepositorySelection(CamelCaseModel):
    """Which repositories to operate on.

    Exactly one of the three modes must be given.
    """

    model_config = ConfigDict(frozen=True)

    all_repositories: Annotated[
        bool | None,
        Field(
            title="All repositories",
            description="Operate on every repository in the registry.",
            examples=[True],
        ),
    ] = None

    names: Annotated[
        list[str] | None,
        BeforeValidator(_split_names),
        Field(
            title="Repository names",
            description=(
                "Explicit list of repository names, or a single "
                "comma-separated string of them."
            ),
            examples=[["base-images", "services/api"]],
        ),
    ] = None

    pattern: Annotated[
        str | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Repository pattern",
            description=(
                "Regular expression; repositories whose names match it "
                "anywhere are selected."
            ),
            examples=["^services/"],
        ),
    ] = None

    @field_validator("all_repositories")
    @classmethod
    def _false_is_unset(cls, v: bool | None) -> bool | None:
        return v or None

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(
                    f"Invalid repository pattern {v!r}: {exc}"
                ) from exc
        return v

    @model_validator(mode="after")
    def _exactly_one_mode(self) -> Self:
        given = [
            x
            for x in ("all_repositories", "names", "pattern")
            if getattr(self, x) is not None
        ]
        if len(given) != 1:
            raise ValueError(
                "Exactly one of all_repositories, names, and pattern must "
                f"be given (got {', '.join(given) or 'none'})"
            )
        return self


class Config(CamelCaseModel):
    """Configuration for a reaper run.

    Instances are immutable.  Use ``model_copy(update=...)`` to derive a
    configuration with command-line overrides applied.
    """

    model_config = ConfigDict(frozen=True)

    region: Annotated[
        str | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Region",
            description=(
                "AWS region of the registry.  If unset, the usual boto3 "
                "resolution applies."
            ),
            examples=["us-east-1"],
        ),
    ] = None

    profile: Annotated[
        str | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Profile",
            description="AWS shared-credentials profile to use.",
            examples=["prod"],
        ),
    ] = None

    registry_id: Annotated[
        str | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Registry ID",
            description=(
                "AWS account ID of the registry, if not the caller's own."
            ),
            examples=["123456789012"],
        ),
    ] = None

    max_attempts: Annotated[
        int,
        Field(
            title="Maximum attempts",
            description=(
                "Attempts per registry call, including the first, under "
                "botocore's standard retry mode."
            ),
            ge=1,
        ),
    ] = 5

    max_workers: Annotated[
        int,
        Field(
            title="Maximum workers",
            description="Repositories processed concurrently.",
            ge=1,
        ),
    ] = 8

    chunk_workers: Annotated[
        int,
        Field(
            title="Chunk workers",
            description=(
                "Manifest batches fetched concurrently within a single "
                "repository."
            ),
            ge=1,
        ),
    ] = 1

    dry_run: Annotated[
        bool,
        Field(
            title="Dry run",
            description="Do not actually change anything in the registry.",
        ),
    ] = False

    debug: Annotated[
        bool,
        Field(
            title="Debug",
            description="Much more verbose logging.",
        ),
    ] = False

    input_file: Annotated[
        Path | None,
        Field(
            title="Input file",
            description=(
                "If supplied, use registry contents from this snapshot "
                "file, rather than talking to ECR."
            ),
        ),
    ] = None

    selection: Annotated[
        RepositorySelection | None,
        Field(
            title="Repository selection",
            description="Repositories to operate on.",
        ),
    ] = None

    policy_file: Annotated[
        Path | None,
        Field(
            title="Policy file",
            description="JSON lifecycle policy to apply to repositories.",
        ),
    ] = None

    @classmethod
    def from_file(cls, path: Path) -> Self:
        return cls.model_validate(yaml.safe_load(path.read_text()) or {})
