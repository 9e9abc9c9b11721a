from __future__ import annotations

import typing as t

import boto3
import pydantic as p
from dependency_injector.containers import DeclarativeContainer
from dependency_injector.providers import Configuration, Container, Provider, Singleton

from gradepush.lib.vendor.sits import SITSClient

from ..config.vendor import SITSSettings

if t.TYPE_CHECKING:
    from mypy_boto3_sqs import SQSClient  # pyright: ignore [reportMissingModuleSource]


class AWSContainer(DeclarativeContainer):
    @staticmethod
    def provide_sqs(
        region: str,
        endpoint_url: p.AnyUrl | str | None,
        access_key_id: p.Secret[str] | None,
        secret_access_key: p.Secret[str] | None,
    ) -> SQSClient:
        # unset credentials fall through to boto3's own resolution chain
        return boto3.client(
            "sqs",
            region_name=region,
            endpoint_url=str(endpoint_url) if endpoint_url else None,
            aws_access_key_id=access_key_id.get_secret_value() if access_key_id else None,
            aws_secret_access_key=secret_access_key.get_secret_value() if secret_access_key else None,
        )

    config: Configuration = Configuration()
    secrets: Configuration = Configuration()

    sqs: Provider[SQSClient] = Singleton(
        provide_sqs,
        region=config.region,
        endpoint_url=config.endpoint_url,
        access_key_id=secrets.access_key_id,
        secret_access_key=secrets.secret_access_key,
    )


class SITSContainer(DeclarativeContainer):
    @staticmethod
    def provide_client(config: SITSSettings, token: p.Secret[str] | None) -> SITSClient:
        return SITSClient(
            str(config.base_url).rstrip("/"),
            token=token.get_secret_value() if token else None,
            timeout=config.timeout,
            limit=config.limit,
            cache_ttl=config.cache_ttl,
        )

    config: Configuration = Configuration()
    secrets: Configuration = Configuration()

    client: Provider[SITSClient] = Singleton(provide_client, config=config.as_(SITSSettings), token=secrets.token)


class VendorContainer(DeclarativeContainer):
    config: Configuration = Configuration()
    queue: Configuration = Configuration()
    secrets: Configuration = Configuration()

    aws: Provider[AWSContainer] = Container(AWSContainer, config=queue, secrets=secrets.aws)
    sits: Provider[SITSContainer] = Container(SITSContainer, config=config.sits, secrets=secrets.sits)
