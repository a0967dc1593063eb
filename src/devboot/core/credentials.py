"""
Credential bootstrapper.

Runs once per container start and leaves the container with exactly one
working AWS credential source, or with a warning explaining how to get one:

  codespaces  -> IAM Roles Anywhere (certificate + aws_signing_helper)
  local-host  -> copy of the host's mounted ~/.aws
  local       -> IAM Roles Anywhere when all secrets are set, else nothing

Nothing here is fatal. A failed identity check leaves the written material
in place because the next container start runs the bootstrapper again.
"""

from __future__ import annotations

import base64
import binascii
import configparser
import io
import logging
import os
import shlex
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from devboot.core.aws import CallerIdentity, IdentityProvider
from devboot.core.config import DevbootConfig, save_active_profile
from devboot.core.constants import (
    AWS_CONFIG_FILENAME,
    AWS_CREDENTIALS_FILENAME,
    AWS_DIR_NAME,
    AWS_HOST_DIR_NAME,
    CERTIFICATE_FILENAME,
    CREDENTIAL_HELPER_FILENAME,
    PRIVATE_KEY_FILENAME,
    ROLES_ANYWHERE_DIR_NAME,
    ROLES_ANYWHERE_PROFILE_NAME,
    ROLES_ANYWHERE_SECRETS,
    SIGNING_HELPER_BINARY,
)
from devboot.core.environment import (
    Environment,
    HostCopy,
    NoStrategy,
    NoStrategyReason,
    RolesAnywhere,
    SecretBundle,
    Strategy,
    classify_environment,
    select_strategy,
)
from devboot.core.exceptions import CredentialMaterialError, IdentityError
from devboot.core.reporting import Reporter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CredentialPaths:
    aws_dir: Path
    host_dir: Path

    @classmethod
    def for_home(cls, home: Path) -> CredentialPaths:
        return cls(aws_dir=home / AWS_DIR_NAME, host_dir=home / AWS_HOST_DIR_NAME)

    @property
    def material_dir(self) -> Path:
        return self.aws_dir / ROLES_ANYWHERE_DIR_NAME

    @property
    def certificate(self) -> Path:
        return self.material_dir / CERTIFICATE_FILENAME

    @property
    def private_key(self) -> Path:
        return self.material_dir / PRIVATE_KEY_FILENAME

    @property
    def helper(self) -> Path:
        return self.aws_dir / CREDENTIAL_HELPER_FILENAME

    @property
    def config(self) -> Path:
        return self.aws_dir / AWS_CONFIG_FILENAME

    @property
    def credentials(self) -> Path:
        return self.aws_dir / AWS_CREDENTIALS_FILENAME

    @property
    def host_config(self) -> Path:
        return self.host_dir / AWS_CONFIG_FILENAME

    @property
    def host_credentials(self) -> Path:
        return self.host_dir / AWS_CREDENTIALS_FILENAME


# ---------------------------------------------------------------------------
# Roles Anywhere material
# ---------------------------------------------------------------------------


def derive_region(override: str | None, trust_anchor_arn: str, fallback: str) -> str:
    """Explicit override, else the region field of the trust anchor ARN, else fallback."""
    if override:
        return override
    parts = trust_anchor_arn.split(":")
    if len(parts) > 3 and parts[3]:
        return parts[3]
    return fallback


def _decode(value: str, label: str) -> bytes:
    try:
        return base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CredentialMaterialError(f"{label} is not valid base64: {exc}") from exc


def _write_private(path: Path, data: bytes) -> None:
    """Write ``data`` readable and writable by the owner only, whatever the umask."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    # an existing file keeps its old mode through O_CREAT, so force it
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)


def _write_with_mode(path: Path, data: bytes, mode: int) -> None:
    path.write_bytes(data)
    path.chmod(mode)


def render_credential_helper(bundle: SecretBundle, paths: CredentialPaths) -> str:
    args = [
        SIGNING_HELPER_BINARY,
        "credential-process",
        "--certificate",
        str(paths.certificate),
        "--private-key",
        str(paths.private_key),
        "--trust-anchor-arn",
        bundle.trust_anchor_arn,
        "--profile-arn",
        bundle.profile_arn,
        "--role-arn",
        bundle.role_arn,
    ]
    quoted = [shlex.quote(a) for a in args]
    return "#!/bin/bash\nexec " + " \\\n    ".join(quoted) + "\n"


def render_aws_config(region: str, helper: Path) -> str:
    parser = configparser.ConfigParser(interpolation=None)
    for section in ("default", f"profile {ROLES_ANYWHERE_PROFILE_NAME}"):
        parser[section] = {"region": region, "credential_process": str(helper)}
    buf = io.StringIO()
    parser.write(buf)
    return buf.getvalue()


def write_roles_anywhere_material(
    bundle: SecretBundle, paths: CredentialPaths, region: str
) -> None:
    """
    Materialise certificate, key, credential helper and AWS config.

    Both base64 values are decoded before anything touches the disk, so a
    bad secret never leaves a half-written set of files behind.
    """
    if not bundle.complete:
        raise CredentialMaterialError(
            "Refusing to write partial Roles Anywhere material; missing: "
            + ", ".join(bundle.missing())
        )
    certificate = _decode(bundle.certificate, "ROLES_ANYWHERE_CERTIFICATE")
    private_key = _decode(bundle.private_key, "ROLES_ANYWHERE_PRIVATE_KEY")

    try:
        paths.material_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        _write_private(paths.private_key, private_key)
        _write_with_mode(paths.certificate, certificate, 0o644)
        _write_with_mode(
            paths.helper, render_credential_helper(bundle, paths).encode(), 0o755
        )
        _write_with_mode(paths.config, render_aws_config(region, paths.helper).encode(), 0o644)
    except OSError as exc:
        raise CredentialMaterialError(f"Cannot write credential material: {exc}") from exc
    logger.info("Roles Anywhere material written under %s", paths.aws_dir)


def copy_host_credentials(paths: CredentialPaths) -> None:
    """Copy the read-only host mount into ~/.aws (symlinks would stay read-only)."""
    try:
        paths.aws_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        if paths.host_config.is_file():
            shutil.copyfile(paths.host_config, paths.config)
        if paths.host_credentials.is_file():
            _write_private(paths.credentials, paths.host_credentials.read_bytes())
    except OSError as exc:
        raise CredentialMaterialError(f"Cannot copy host credentials: {exc}") from exc


# ---------------------------------------------------------------------------
# Bootstrapper
# ---------------------------------------------------------------------------


class BootstrapOutcome(str, Enum):
    CONFIGURED = "configured"
    UNVERIFIED = "unverified"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BootstrapResult:
    environment: Environment
    strategy: Strategy
    outcome: BootstrapOutcome
    identity: CallerIdentity | None = None
    profile: str | None = None


class CredentialBootstrapper:
    """
    Select and apply one credential strategy.

    Lifecycle::

        result = CredentialBootstrapper(config, identity, reporter).run()
    """

    def __init__(
        self,
        config: DevbootConfig,
        identity: IdentityProvider,
        reporter: Reporter,
        paths: CredentialPaths | None = None,
        environ: Mapping[str, str] | None = None,
        session_path: Path | None = None,
    ) -> None:
        self._config = config
        self._identity = identity
        self._reporter = reporter
        self._paths = paths or CredentialPaths.for_home(Path.home())
        self._environ = os.environ if environ is None else environ
        self._session_path = session_path

    def classify(self) -> Environment:
        return classify_environment(self._environ, self._paths.host_dir.is_dir())

    def select(self, environment: Environment) -> Strategy:
        return select_strategy(
            environment,
            SecretBundle.from_env(self._environ),
            self._paths.host_credentials.is_file(),
            self._paths.host_dir,
        )

    def run(self) -> BootstrapResult:
        r = self._reporter
        r.info("Setting up AWS credentials...")
        environment = self.classify()
        r.info(_ENVIRONMENT_MESSAGES[environment])

        strategy = self.select(environment)
        logger.info("environment=%s strategy=%s", environment.value, strategy.name)

        if isinstance(strategy, RolesAnywhere):
            result = self._apply_roles_anywhere(environment, strategy)
        elif isinstance(strategy, HostCopy):
            result = self._apply_host_copy(environment, strategy)
        else:
            self._report_no_strategy(strategy)
            result = BootstrapResult(environment, strategy, BootstrapOutcome.SKIPPED)

        r.info("AWS credential setup complete.")
        return result

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _apply_roles_anywhere(
        self, environment: Environment, strategy: RolesAnywhere
    ) -> BootstrapResult:
        bundle = strategy.bundle
        region = derive_region(
            self._config.aws.region,
            bundle.trust_anchor_arn,
            self._config.aws.credentials_fallback_region,
        )
        try:
            write_roles_anywhere_material(bundle, self._paths, region)
        except CredentialMaterialError as exc:
            self._reporter.warning(str(exc))
            self._reporter.warning("IAM Roles Anywhere credentials were not configured.")
            return BootstrapResult(environment, strategy, BootstrapOutcome.UNVERIFIED)

        self._reporter.success(f"IAM Roles Anywhere credentials configured (region {region}).")
        identity = self._verify(profile=None)
        if identity is None:
            self._reporter.warning("Could not verify AWS credentials. Check your configuration.")
            return BootstrapResult(environment, strategy, BootstrapOutcome.UNVERIFIED)
        return BootstrapResult(environment, strategy, BootstrapOutcome.CONFIGURED, identity)

    def _apply_host_copy(self, environment: Environment, strategy: HostCopy) -> BootstrapResult:
        try:
            copy_host_credentials(self._paths)
        except CredentialMaterialError as exc:
            self._reporter.warning(str(exc))
            return BootstrapResult(environment, strategy, BootstrapOutcome.UNVERIFIED)

        profile = self._config.aws.local_profile
        save_active_profile(profile, self._session_path)
        if profile:
            self._reporter.info(f"Active AWS profile: {profile}")
            self._reporter.info('Add \'eval "$(devboot shell-env)"\' to your shell to use it.')

        self._reporter.success("Host AWS credentials configured!")
        identity = self._verify(profile=profile)
        if identity is None:
            self._reporter.warning("Could not verify AWS credentials.")
            self._reporter.warning(
                "Make sure you're authenticated on your host machine (e.g., 'aws sso login')"
            )
            return BootstrapResult(
                environment, strategy, BootstrapOutcome.UNVERIFIED, profile=profile
            )
        return BootstrapResult(
            environment, strategy, BootstrapOutcome.CONFIGURED, identity, profile
        )

    def _verify(self, profile: str | None) -> CallerIdentity | None:
        self._reporter.info("Testing AWS access...")
        try:
            identity = self._identity.get_caller_identity(profile=profile)
        except IdentityError as exc:
            logger.info("Identity check failed: %s", exc)
            return None
        self._reporter.success(f"AWS credentials are working! ({identity.arn})")
        return identity

    def _report_no_strategy(self, strategy: NoStrategy) -> None:
        r = self._reporter
        if strategy.reason is NoStrategyReason.MISSING_SECRETS:
            r.warning("IAM Roles Anywhere secrets not configured.")
            r.detail("Required Codespaces secrets:")
            for name in ROLES_ANYWHERE_SECRETS:
                marker = " (missing)" if name in strategy.missing else ""
                r.detail(f"  - {name}{marker}")
            r.detail()
            r.detail("See AWS_SETUP.md for configuration instructions.")
        elif strategy.reason is NoStrategyReason.NO_HOST_CREDENTIALS:
            r.warning("No host AWS credentials found at ~/.aws")
            r.detail("To use AWS in local development, either:")
            r.detail("  1. Configure AWS CLI on your host machine")
            r.detail("  2. Set up IAM Roles Anywhere (see AWS_SETUP.md)")
        else:
            r.warning("No AWS credentials configured.")
            r.detail("Options:")
            r.detail("  1. Mount host ~/.aws directory (automatic if it exists)")
            r.detail("  2. Set ROLES_ANYWHERE_* environment variables")
            r.detail("  3. See AWS_SETUP.md for full setup instructions")


_ENVIRONMENT_MESSAGES = {
    Environment.CODESPACES: "Running in GitHub Codespaces",
    Environment.LOCAL_HOST: "Running in local devcontainer with host AWS credentials",
    Environment.LOCAL: "Running in local devcontainer without host credentials",
}
