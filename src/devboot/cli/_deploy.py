"""devboot deploy - deploy or update the bootstrap CloudFormation stack."""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from devboot.cli._common import load_or_exit
from devboot.core.certificates import CertificateChain
from devboot.core.constants import ExitCode
from devboot.core.reporting import Reporter

TRUST_ANCHOR_OUTPUT = "RolesAnywhereTrustAnchorArn"
PROFILE_OUTPUT = "RolesAnywhereProfileArn"
ROLE_OUTPUT = "DevcontainerRoleArn"


def cmd_deploy(
    first_run: bool,
    region: str,
    project_name: str,
    environment: str | None,
    template: str,
    certs_dir: str,
    log_level: str | None,
    console: Console,
) -> None:
    import boto3

    from devboot.core.aws import StsIdentityProvider
    from devboot.core.certificates import existing_certificates, generate_chain
    from devboot.core.exceptions import DevbootError, IdentityError
    from devboot.core.stack import StackDeployer

    config = load_or_exit(log_level, console)
    reporter = Reporter(console)

    region = region or config.aws.region_for_connector()
    project = project_name or config.project_name
    env_name = environment or config.stack.environment
    stack_name = config.stack.name
    template_path = Path(template or config.stack.template).expanduser()
    chain = CertificateChain(Path(certs_dir or config.certificates.directory).expanduser())

    console.print("[bold]Bootstrap CloudFormation Deployment[/bold]\n")
    reporter.info(f"Stack Name:    {stack_name}")
    reporter.info(f"Region:        {region}")
    reporter.info(f"Project:       {project}")
    reporter.info(f"Environment:   {env_name}")
    reporter.info(f"First Run:     {str(first_run).lower()}")

    # prerequisites
    reporter.info("Checking prerequisites...")
    try:
        StsIdentityProvider(region=region).get_caller_identity()
    except IdentityError:
        reporter.error("AWS credentials not configured or invalid.")
        reporter.error("Please configure AWS credentials before running this command.")
        sys.exit(ExitCode.ERROR)
    if not template_path.is_file():
        reporter.error(f"Bootstrap template not found at: {template_path}")
        sys.exit(ExitCode.ERROR)
    reporter.success("Prerequisites check passed")

    session = boto3.Session(region_name=region)
    deployer = StackDeployer(session.client("cloudformation"), session.client("ssm"), reporter)
    template_body = template_path.read_text(encoding="utf-8")

    try:
        reporter.info("Validating CloudFormation template...")
        deployer.validate(template_body)
        reporter.success("Template validation passed")

        if first_run:
            if existing_certificates(chain.directory):
                reporter.info(f"Certificates already exist in {chain.directory}")
                reporter.info("Run 'devboot certs generate --force' to regenerate them.")
            else:
                reporter.info("Generating certificates...")
                certs_cfg = config.certificates
                generate_chain(
                    chain.directory,
                    certs_cfg.common_name,
                    certs_cfg.organization,
                    certs_cfg.validity_days,
                    certs_cfg.key_size,
                )
                reporter.success("Certificates generated successfully")

        if not chain.ca_cert.is_file():
            reporter.error(f"CA certificate not found at: {chain.ca_cert}")
            reporter.error("Generate certificates first with: devboot certs generate")
            sys.exit(ExitCode.ERROR)

        reporter.info(f"Deploying CloudFormation stack: {stack_name}")
        changed = deployer.deploy(
            stack_name,
            template_body,
            parameters={
                "ProjectName": project,
                "Environment": env_name,
                "CACertificateBody": chain.ca_cert.read_text(encoding="utf-8"),
            },
            tags={
                "Project": project,
                "Environment": env_name,
                "ManagedBy": "CloudFormation",
            },
        )
        if changed:
            reporter.success("Stack deployment completed successfully")

        outputs = deployer.outputs(stack_name)
        parameters = deployer.parameters_by_path(f"/{project}/")
    except DevbootError as exc:
        reporter.error(str(exc))
        sys.exit(ExitCode.ERROR)

    _print_table(console, "Stack outputs", ("Output", "Value"), outputs)
    _print_table(console, "SSM parameters", ("Name", "Value"), parameters)
    _print_next_steps(reporter, first_run, chain, outputs)


def _print_table(
    console: Console, title: str, headers: tuple[str, str], rows: dict[str, str]
) -> None:
    table = Table(title=title)
    for header in headers:
        table.add_column(header)
    for key, value in rows.items():
        table.add_row(key, value)
    console.print(table)


def _read_or(path: Path, default: str) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError:
        return default


def _print_next_steps(
    reporter: Reporter, first_run: bool, chain: CertificateChain, outputs: dict[str, str]
) -> None:
    trust_anchor = outputs.get(TRUST_ANCHOR_OUTPUT, "")
    profile = outputs.get(PROFILE_OUTPUT, "")
    role = outputs.get(ROLE_OUTPUT, "")

    reporter.info("Next steps:")
    if first_run:
        reporter.detail("1. Configure GitHub Codespaces secrets (if using Codespaces):")
        reporter.detail(
            "   - ROLES_ANYWHERE_CERTIFICATE: "
            + _read_or(chain.leaf_cert_b64, f"contents of {chain.leaf_cert_b64.name}")
        )
        reporter.detail(f"   - ROLES_ANYWHERE_PRIVATE_KEY: contents of {chain.leaf_key_b64}")
        reporter.detail(f"   - ROLES_ANYWHERE_TRUST_ANCHOR_ARN: {trust_anchor}")
        reporter.detail(f"   - ROLES_ANYWHERE_PROFILE_ARN: {profile}")
        reporter.detail(f"   - ROLES_ANYWHERE_ROLE_ARN: {role}")
        reporter.detail()
        reporter.detail("2. For local development, set these environment variables:")
        reporter.detail(f'   export ROLES_ANYWHERE_TRUST_ANCHOR_ARN="{trust_anchor}"')
        reporter.detail(f'   export ROLES_ANYWHERE_PROFILE_ARN="{profile}"')
        reporter.detail(f'   export ROLES_ANYWHERE_ROLE_ARN="{role}"')
    else:
        reporter.detail("1. Verify AWS access:")
        reporter.detail("   aws sts get-caller-identity")
    reporter.success("Bootstrap deployment complete!")
