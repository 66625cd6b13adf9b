"""Storage client for Amazon Elastic Container Registry."""

from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Config
from ..exceptions import RegistryError
from ..models.image import BatchResult, DeleteFailure, to_image_ids
from .registry import ContainerRegistryClient


def boto_config(cfg: Config) -> BotoConfig:
    """Client configuration for ECR.

    The "standard" retry mode backs off exponentially with jitter on
    throttling and transient errors, and does not retry permanent ones
    such as access denied or repository not found.
    """
    return BotoConfig(
        retries={"mode": "standard", "max_attempts": cfg.max_attempts}
    )


class ECRClient(ContainerRegistryClient):
    """Client for Amazon ECR.

    Parameters
    ----------
    cfg
        Reaper configuration.
    session
        boto3 session to create the ECR client from.  Ignored if
        ``client`` is given.
    client
        Already-constructed boto3 ECR client.
    """

    source = "ecr"

    def __init__(
        self,
        cfg: Config,
        session: boto3.Session | None = None,
        client: Any = None,
    ) -> None:
        super().__init__()
        if client is None:
            session = session or boto3.Session(
                profile_name=cfg.profile, region_name=cfg.region
            )
            client = session.client("ecr", config=boto_config(cfg))
        self._client = client
        self._registry_id = cfg.registry_id

    def _params(self, **kwargs: Any) -> dict[str, Any]:
        if self._registry_id:
            kwargs["registryId"] = self._registry_id
        return kwargs

    def list_repositories(self) -> list[str]:
        paginator = self._client.get_paginator("describe_repositories")
        repositories: list[str] = []
        try:
            for page in paginator.paginate(**self._params()):
                repositories.extend(
                    x["repositoryName"] for x in page["repositories"]
                )
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                f"Failed to describe repositories: {exc}"
            ) from exc
        self._logger.debug(f"Found {len(repositories)} repositories")
        return repositories

    def list_image_ids(
        self, repository: str
    ) -> list[tuple[str, str | None]]:
        paginator = self._client.get_paginator("list_images")
        listing: list[tuple[str, str | None]] = []
        try:
            pages = paginator.paginate(
                **self._params(repositoryName=repository)
            )
            for count, page in enumerate(pages):
                self._logger.debug(
                    f"Received {repository}: image page {count + 1}"
                )
                listing.extend(
                    (x["imageDigest"], x.get("imageTag"))
                    for x in page["imageIds"]
                )
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                f"Failed to list images for repository {repository}: {exc}"
            ) from exc
        return listing

    def fetch_manifests(
        self, repository: str, digests: list[str]
    ) -> dict[str, str]:
        try:
            resp = self._client.batch_get_image(
                **self._params(
                    repositoryName=repository,
                    imageIds=to_image_ids(digests),
                )
            )
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                f"Failed to batch get images for repository {repository}: "
                f"{exc}"
            ) from exc
        for failure in resp.get("failures", []):
            self._logger.warning(
                f"Could not get manifest in {repository}",
                digest=failure.get("imageId", {}).get("imageDigest"),
                code=failure.get("failureCode"),
                reason=failure.get("failureReason"),
            )
        return {
            x["imageId"]["imageDigest"]: x["imageManifest"]
            for x in resp.get("images", [])
        }

    def batch_delete_images(
        self, repository: str, digests: list[str]
    ) -> BatchResult:
        try:
            resp = self._client.batch_delete_image(
                **self._params(
                    repositoryName=repository,
                    imageIds=to_image_ids(digests),
                )
            )
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                "Failed to batch delete images for repository "
                f"{repository}: {exc}"
            ) from exc
        return BatchResult(
            deleted=[x["imageDigest"] for x in resp.get("imageIds", [])],
            failures=[
                DeleteFailure(
                    digest=x.get("imageId", {}).get("imageDigest", ""),
                    code=x.get("failureCode", ""),
                    reason=x.get("failureReason", ""),
                )
                for x in resp.get("failures", [])
            ],
        )

    def put_lifecycle_policy(self, repository: str, policy_text: str) -> str:
        try:
            resp = self._client.put_lifecycle_policy(
                **self._params(
                    repositoryName=repository,
                    lifecyclePolicyText=policy_text,
                )
            )
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                f"Failed to set lifecycle policy for {repository}: {exc}"
            ) from exc
        return resp["lifecyclePolicyText"]

    def get_lifecycle_policy(self, repository: str) -> str | None:
        try:
            resp = self._client.get_lifecycle_policy(
                **self._params(repositoryName=repository)
            )
        except self._client.exceptions.LifecyclePolicyNotFoundException:
            return None
        except (BotoCoreError, ClientError) as exc:
            raise RegistryError(
                f"Failed to get lifecycle policy for {repository}: {exc}"
            ) from exc
        return resp["lifecyclePolicyText"]

    def close(self) -> None:
        self._client.close()
