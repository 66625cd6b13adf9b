"""Component factory."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Self

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .config import Config
from .exceptions import RegistryError
from .services.policy import LifecyclePolicySetter
from .services.reaper import BuckDharma
from .storage.ecr import ECRClient, boto_config
from .storage.preloaded import PreloadedClient
from .storage.registry import ContainerRegistryClient


def configure_logging(*, debug: bool) -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level)
    )


class Factory:
    """Build reaper components.

    Parameters
    ----------
    config
        Reaper configuration.
    session
        boto3 session to use for AWS calls.  Created from the
        configuration's profile and region if not given.
    """

    @classmethod
    @contextmanager
    def standalone(cls, config: Config) -> Iterator[Self]:
        """Context manager for reaper components.

        Sets up logging first, and closes the registry client on exit.

        Yields
        ------
        Factory
            Newly-created factory.
        """
        configure_logging(debug=config.debug)
        factory = cls(config)
        try:
            yield factory
        finally:
            factory.close()

    def __init__(
        self, config: Config, session: boto3.Session | None = None
    ) -> None:
        self._config = config
        self._session = session
        self._registry: ContainerRegistryClient | None = None
        self._logger = structlog.get_logger(__name__)

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            try:
                self._session = boto3.Session(
                    profile_name=self._config.profile,
                    region_name=self._config.region,
                )
            except BotoCoreError as exc:
                raise RegistryError(
                    f"Unable to create AWS session: {exc}"
                ) from exc
        return self._session

    def identity(self) -> tuple[str, str]:
        """Return the AWS account and region in use, for the record.

        With a preloaded snapshot, no AWS calls are made.
        """
        if self._config.input_file:
            return ("<preloaded>", f"<{self._config.input_file}>")
        session = self.session
        try:
            sts = session.client("sts", config=boto_config(self._config))
            account = sts.get_caller_identity()["Account"]
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                f"Unable to get caller identity: {exc}"
            ) from exc
        return (account, session.region_name or "<unset>")

    def create_registry_client(self) -> ContainerRegistryClient:
        """Return the registry client, creating it on first use.

        All components share one client; boto3 clients are thread-safe.
        """
        if self._registry is None:
            if self._config.input_file:
                self._registry = PreloadedClient.from_file(
                    self._config.input_file
                )
            else:
                session = self.session
                try:
                    self._registry = ECRClient(self._config, session=session)
                except BotoCoreError as exc:
                    raise RegistryError(
                        f"Unable to create ECR client: {exc}"
                    ) from exc
        return self._registry

    def create_reaper(self) -> BuckDharma:
        return BuckDharma(self.create_registry_client(), self._config)

    def create_policy_setter(self, policy_text: str) -> LifecyclePolicySetter:
        return LifecyclePolicySetter(
            self.create_registry_client(), self._config, policy_text
        )

    def close(self) -> None:
        if self._registry is not None:
            self._registry.close()
        self._registry = None
