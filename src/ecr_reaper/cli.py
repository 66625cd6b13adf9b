"""CLI for ECR Reaper."""

import argparse
import sys
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .config import Config, RepositorySelection
from .exceptions import CleanupError, ReaperError
from .factory import Factory
from .services.policy import read_policy_file
from .services.selection import select_repositories


def _add_selection_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-a",
        "--all-repos",
        "--allRepos",
        action="store_true",
        help="operate on every repository in the registry",
        default=False,
    )
    group.add_argument(
        "-r",
        "--repo-list",
        "--repoList",
        help="operate on these repositories (comma-separated list)",
        default=None,
    )
    group.add_argument(
        "-p",
        "--repo-pattern",
        "--repoPattern",
        help="operate on repositories whose names match this regex",
        default=None,
    )
    parser.add_argument(
        "-x",
        "--dry-run",
        "--dryRun",
        action="store_true",
        help="Dry run only: do not change anything in the registry",
        default=False,
    )
    parser.add_argument(
        "-w",
        "--max-workers",
        type=int,
        help="number of repositories to process at once",
        default=None,
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="ecr-reaper",
        description=(
            "Manage ECR repositories: apply lifecycle policies, and clean "
            "up orphaned images from multi-platform builds."
        ),
    )
    parser.add_argument(
        "-c",
        "--config-file",
        "--file",
        type=Path,
        help="reaper config file",
        default=None,
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
        default=False,
    )
    parser.add_argument("--region", help="AWS region", default=None)
    parser.add_argument("--profile", help="AWS profile", default=None)
    parser.add_argument(
        "-i",
        "--input-file",
        type=Path,
        help="use this registry snapshot instead of talking to ECR",
        default=None,
    )
    subparsers = parser.add_subparsers(title="commands", required=True)

    clean = subparsers.add_parser(
        "clean",
        help="delete untagged images not referenced by any tagged image",
    )
    _add_selection_args(clean)
    clean.add_argument(
        "--chunk-workers",
        type=int,
        help="manifest batches to fetch at once within a repository",
        default=None,
    )
    clean.set_defaults(handler=_clean)

    set_policy = subparsers.add_parser(
        "set-policy",
        aliases=["setPolicy"],
        help="set a lifecycle policy on repositories",
    )
    _add_selection_args(set_policy)
    set_policy.add_argument(
        "-f",
        "--policy-file",
        "--policyFile",
        type=Path,
        help="path to the JSON file containing the lifecycle policy",
        default=None,
    )
    set_policy.set_defaults(handler=_set_policy)

    dump = subparsers.add_parser(
        "dump", help="write a snapshot of repositories to a JSON file"
    )
    _add_selection_args(dump)
    dump.add_argument(
        "-o",
        "--output",
        type=Path,
        required=True,
        help="snapshot file to write",
    )
    dump.set_defaults(handler=_dump)

    return parser.parse_args(argv)


def _selection(args: argparse.Namespace) -> RepositorySelection | None:
    if args.all_repos:
        return RepositorySelection(all_repositories=True)
    if args.repo_list is not None:
        return RepositorySelection(names=args.repo_list)
    if args.repo_pattern is not None:
        return RepositorySelection(pattern=args.repo_pattern)
    return None


def _load_config(args: argparse.Namespace) -> Config:
    cfg = Config.from_file(args.config_file) if args.config_file else Config()

    # Override settings in config with anything given here
    update: dict[str, Any] = {}
    if args.dry_run:
        update["dry_run"] = True
    if args.debug:
        update["debug"] = True
    for field in ("region", "profile", "input_file", "max_workers"):
        value = getattr(args, field)
        if value is not None:
            update[field] = value
    if getattr(args, "chunk_workers", None) is not None:
        update["chunk_workers"] = args.chunk_workers
    if getattr(args, "policy_file", None) is not None:
        update["policy_file"] = args.policy_file
    selection = _selection(args)
    if selection is not None:
        update["selection"] = selection
    # Validate the result, since model_copy() does not.
    return Config.model_validate(
        cfg.model_copy(update=update).model_dump()
    )


def _clean(
    args: argparse.Namespace,
    factory: Factory,
    cfg: Config,
    repositories: list[str],
) -> int:
    boc = factory.create_reaper()
    try:
        boc.clean(repositories)
    except CleanupError:
        boc.report()
        raise
    if repositories:
        boc.report()
    return 0


def _set_policy(
    args: argparse.Namespace,
    factory: Factory,
    cfg: Config,
    repositories: list[str],
) -> int:
    if cfg.policy_file is None:
        raise ReaperError("A policy file is required (--policy-file)")
    policy_text = read_policy_file(cfg.policy_file)
    factory.create_policy_setter(policy_text).set_policies(repositories)
    return 0


def _dump(
    args: argparse.Namespace,
    factory: Factory,
    cfg: Config,
    repositories: list[str],
) -> int:
    factory.create_registry_client().debug_dump_repositories(
        args.output, repositories
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the reaper, returning the process exit status."""
    args = _parse_args(argv)
    logger = structlog.get_logger(__name__)
    try:
        cfg = _load_config(args)
    except (OSError, ValidationError, yaml.YAMLError) as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 2
    if cfg.selection is None:
        logger.error(
            "No repositories selected: use one of --all-repos, "
            "--repo-list, or --repo-pattern"
        )
        return 2
    with Factory.standalone(cfg) as factory:
        try:
            account, region = factory.identity()
            logger.info(f"Using AWS account {account} in region {region}")
            registry = factory.create_registry_client()
            repositories = select_repositories(registry, cfg.selection)
            if not repositories:
                logger.info("No repositories selected.")
                return 0
            logger.info(f"Selected {len(repositories)} repositories")
            return args.handler(args, factory, cfg, repositories)
        except ReaperError as exc:
            logger.error(str(exc))
            return 1


def cowbell() -> None:
    """Entry point for the ``ecr-reaper`` command."""
    sys.exit(main())
