"""
Environment classification and credential strategy selection.

Both functions here are pure: they look only at the values passed in, so
the whole decision table can be tested without touching the filesystem.

    environment = classify_environment(os.environ, host_dir.is_dir())
    strategy = select_strategy(environment, SecretBundle.from_env(os.environ),
                               host_credentials.is_file(), host_dir)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path

from devboot.core.constants import (
    ENV_CODESPACES,
    ENV_RA_CERTIFICATE,
    ENV_RA_PRIVATE_KEY,
    ENV_RA_PROFILE_ARN,
    ENV_RA_ROLE_ARN,
    ENV_RA_TRUST_ANCHOR_ARN,
)


class Environment(str, Enum):
    CODESPACES = "codespaces"
    LOCAL_HOST = "local-host"
    LOCAL = "local"


def classify_environment(environ: Mapping[str, str], host_aws_dir_exists: bool) -> Environment:
    """Codespaces marker wins, then a mounted host ~/.aws, else plain local."""
    if environ.get(ENV_CODESPACES):
        return Environment.CODESPACES
    if host_aws_dir_exists:
        return Environment.LOCAL_HOST
    return Environment.LOCAL


# ---------------------------------------------------------------------------
# Secret bundle
# ---------------------------------------------------------------------------

_FIELD_ENV = {
    "certificate": ENV_RA_CERTIFICATE,
    "private_key": ENV_RA_PRIVATE_KEY,
    "trust_anchor_arn": ENV_RA_TRUST_ANCHOR_ARN,
    "profile_arn": ENV_RA_PROFILE_ARN,
    "role_arn": ENV_RA_ROLE_ARN,
}


@dataclass(frozen=True)
class SecretBundle:
    """The five IAM Roles Anywhere secrets. Certificate and key are base64 PEM."""

    certificate: str = field(default="", repr=False)
    private_key: str = field(default="", repr=False)
    trust_anchor_arn: str = ""
    profile_arn: str = ""
    role_arn: str = ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> SecretBundle:
        return cls(**{name: environ.get(var, "").strip() for name, var in _FIELD_ENV.items()})

    def missing(self) -> list[str]:
        """Environment variable names of the empty fields, in canonical order."""
        return [_FIELD_ENV[f.name] for f in fields(self) if not getattr(self, f.name)]

    @property
    def complete(self) -> bool:
        return not self.missing()


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class NoStrategyReason(str, Enum):
    MISSING_SECRETS = "missing-secrets"
    NO_HOST_CREDENTIALS = "no-host-credentials"
    UNCONFIGURED = "unconfigured"


@dataclass(frozen=True)
class RolesAnywhere:
    bundle: SecretBundle
    name: str = "roles-anywhere"


@dataclass(frozen=True)
class HostCopy:
    host_dir: Path
    name: str = "host-copy"


@dataclass(frozen=True)
class NoStrategy:
    reason: NoStrategyReason
    missing: tuple[str, ...] = ()
    name: str = "none"


Strategy = RolesAnywhere | HostCopy | NoStrategy


def select_strategy(
    environment: Environment,
    bundle: SecretBundle,
    host_credentials_exists: bool,
    host_dir: Path,
) -> Strategy:
    """
    Pick exactly one credential strategy.

    An incomplete secret bundle never selects RolesAnywhere; the caller gets
    a NoStrategy naming the missing secrets instead.
    """
    if environment is Environment.CODESPACES:
        if bundle.complete:
            return RolesAnywhere(bundle)
        return NoStrategy(NoStrategyReason.MISSING_SECRETS, tuple(bundle.missing()))

    if environment is Environment.LOCAL_HOST:
        if host_credentials_exists:
            return HostCopy(host_dir)
        return NoStrategy(NoStrategyReason.NO_HOST_CREDENTIALS)

    if bundle.complete:
        return RolesAnywhere(bundle)
    if len(bundle.missing()) < len(_FIELD_ENV):
        # partially set: the user is attempting Roles Anywhere
        return NoStrategy(NoStrategyReason.MISSING_SECRETS, tuple(bundle.missing()))
    return NoStrategy(NoStrategyReason.UNCONFIGURED)
