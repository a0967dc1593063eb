"""devboot constants: filesystem layout, defaults, and limits."""

from __future__ import annotations

from enum import IntEnum

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

DEVBOOT_DIR_NAME = ".devboot"
CONFIG_FILENAME = "config.toml"
SESSION_FILENAME = "session.toml"

AWS_DIR_NAME = ".aws"
AWS_HOST_DIR_NAME = ".aws-host"  # read-only mount of the host's ~/.aws
ROLES_ANYWHERE_DIR_NAME = "roles-anywhere"
CERTIFICATE_FILENAME = "certificate.pem"
PRIVATE_KEY_FILENAME = "private-key.pem"
CREDENTIAL_HELPER_FILENAME = "roles-anywhere-credential-helper.sh"
AWS_CONFIG_FILENAME = "config"
AWS_CREDENTIALS_FILENAME = "credentials"

# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------

ENV_CODESPACES = "CODESPACES"
ENV_PROJECT_NAME = "PROJECT_NAME"
ENV_AWS_REGION = "AWS_REGION"
ENV_AWS_PROFILE_LOCAL = "AWS_PROFILE_LOCAL"
ENV_CONFIG_PATH = "DEVBOOT_CONFIG"
ENV_LOG_LEVEL = "DEVBOOT_LOG_LEVEL"

ENV_RA_CERTIFICATE = "ROLES_ANYWHERE_CERTIFICATE"
ENV_RA_PRIVATE_KEY = "ROLES_ANYWHERE_PRIVATE_KEY"
ENV_RA_TRUST_ANCHOR_ARN = "ROLES_ANYWHERE_TRUST_ANCHOR_ARN"
ENV_RA_PROFILE_ARN = "ROLES_ANYWHERE_PROFILE_ARN"
ENV_RA_ROLE_ARN = "ROLES_ANYWHERE_ROLE_ARN"

ROLES_ANYWHERE_SECRETS = (
    ENV_RA_CERTIFICATE,
    ENV_RA_PRIVATE_KEY,
    ENV_RA_TRUST_ANCHOR_ARN,
    ENV_RA_PROFILE_ARN,
    ENV_RA_ROLE_ARN,
)

# ---------------------------------------------------------------------------
# AWS
# ---------------------------------------------------------------------------

DEFAULT_PROJECT_NAME = "claude-code-playground"
DEFAULT_CREDENTIALS_REGION = "us-east-1"
DEFAULT_CONNECTOR_REGION = "us-west-2"
ROLES_ANYWHERE_PROFILE_NAME = "roles-anywhere"
SIGNING_HELPER_BINARY = "aws_signing_helper"

# ---------------------------------------------------------------------------
# Tailscale
# ---------------------------------------------------------------------------

TAILSCALE_AUTH_KEY_PARAMETER = "/{project_name}/config/tailscale-auth-key"
PLACEHOLDER_VALUE = "PLACEHOLDER_UPDATE_AFTER_DEPLOYMENT"
TAILSCALE_KEY_PREFIX = "tskey-"
TAILSCALE_SOCKET_PATH = "/var/run/tailscale/tailscaled.sock"
TAILSCALE_LOG_PATH = "/tmp/tailscaled.log"  # nosec B108
DAEMON_POLL_ATTEMPTS = 30
DAEMON_POLL_INTERVAL_SECONDS = 0.5
DAEMON_LOG_TAIL_LINES = 10

# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------

DEFAULT_VALIDITY_DAYS = 365
DEFAULT_COMMON_NAME = "devcontainer-claude-code-playground"
DEFAULT_ORGANIZATION = "Claude Code Playground"
DEFAULT_KEY_SIZE = 4096
MIN_KEY_SIZE = 2048

# ---------------------------------------------------------------------------
# Bootstrap stack
# ---------------------------------------------------------------------------

DEFAULT_STACK_NAME = "claude-code-bootstrap"
DEFAULT_STACK_ENVIRONMENT = "dev"
DEFAULT_TEMPLATE_PATH = "aws-infrastructure/bootstrap.template"
DEFAULT_CERTIFICATES_DIR = "aws-infrastructure/certificates"
