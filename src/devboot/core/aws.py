"""
Narrow AWS interfaces used by the bootstrapper and the connector.

The decision logic depends only on the two protocols below; the boto3
implementations are what the CLI wires in. A new ``boto3.Session`` is built
per call so that an AWS config file written moments earlier (for example a
``credential_process`` entry) is always read fresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from devboot.core.exceptions import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    account: str
    arn: str
    user_id: str


class IdentityProvider(Protocol):
    def get_caller_identity(self, profile: str | None = None) -> CallerIdentity:
        """Return the active identity or raise IdentityError."""
        ...


class ParameterStore(Protocol):
    def get_parameter(self, name: str, decrypt: bool = True) -> str | None:
        """Return the parameter value, or None when it cannot be fetched."""
        ...


def _session(profile: str | None, region: str | None) -> boto3.Session:
    return boto3.Session(profile_name=profile, region_name=region)


class StsIdentityProvider:
    """IdentityProvider backed by ``sts:GetCallerIdentity``."""

    def __init__(self, region: str | None = None) -> None:
        self.region = region

    def get_caller_identity(self, profile: str | None = None) -> CallerIdentity:
        try:
            client = _session(profile, self.region).client("sts")
            resp = client.get_caller_identity()
        except (BotoCoreError, ClientError) as exc:
            raise IdentityError(str(exc)) from exc
        return CallerIdentity(
            account=resp.get("Account", ""),
            arn=resp.get("Arn", ""),
            user_id=resp.get("UserId", ""),
        )


class SsmParameterStore:
    """ParameterStore backed by SSM Parameter Store."""

    def __init__(self, region: str, profile: str | None = None) -> None:
        self.region = region
        self.profile = profile

    def get_parameter(self, name: str, decrypt: bool = True) -> str | None:
        try:
            client = _session(self.profile, self.region).client("ssm")
            resp = client.get_parameter(Name=name, WithDecryption=decrypt)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            logger.info("SSM get_parameter %s failed: %s", name, code or exc)
            return None
        except BotoCoreError as exc:
            logger.info("SSM get_parameter %s failed: %s", name, exc)
            return None
        return resp.get("Parameter", {}).get("Value")
