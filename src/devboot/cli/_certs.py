"""devboot certs generate - IAM Roles Anywhere certificate chain."""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm

from devboot.cli._common import load_or_exit
from devboot.core.constants import ExitCode


def cmd_certs_generate(
    directory: str,
    common_name: str,
    validity_days: int | None,
    key_size: int | None,
    force: bool,
    no_input: bool,
    log_level: str | None,
    console: Console,
) -> None:
    from devboot.core.certificates import existing_certificates, generate_chain
    from devboot.core.constants import MIN_KEY_SIZE
    from devboot.core.exceptions import CertificateError
    from devboot.core.reporting import Reporter

    config = load_or_exit(log_level, console)
    reporter = Reporter(console)
    certs_cfg = config.certificates

    out_dir = Path(directory or certs_cfg.directory).expanduser()
    cn = common_name or certs_cfg.common_name
    days = validity_days or certs_cfg.validity_days
    bits = key_size or certs_cfg.key_size
    if bits < MIN_KEY_SIZE:
        reporter.error(f"--key-size must be at least {MIN_KEY_SIZE}")
        sys.exit(ExitCode.ERROR)

    console.print("[bold]IAM Roles Anywhere Certificate Generator[/bold]\n")

    existing = existing_certificates(out_dir)
    if existing and not force:
        reporter.warning(f"Certificates already exist in {out_dir}")
        if no_input or not sys.stdin.isatty():
            reporter.info("Keeping existing certificates (use --force to regenerate).")
            return
        if not Confirm.ask("Do you want to regenerate them?", default=False):
            reporter.info("Keeping existing certificates.")
            return

    reporter.info(f"Generating CA and end-entity certificate ({bits}-bit RSA, {days} days)...")
    try:
        chain = generate_chain(out_dir, cn, certs_cfg.organization, days, bits)
    except CertificateError as exc:
        reporter.error(str(exc))
        sys.exit(ExitCode.ERROR)
    reporter.success("Certificate chain generated and verified")

    reporter.detail()
    reporter.detail(f"Generated files in {out_dir}:")
    reporter.detail(f"  CA Certificate:           {chain.ca_cert.name}")
    reporter.detail(f"  CA Private Key:           {chain.ca_key.name} (KEEP SECURE!)")
    reporter.detail(f"  End-Entity Certificate:   {chain.leaf_cert.name}")
    reporter.detail(f"  End-Entity Private Key:   {chain.leaf_key.name} (KEEP SECURE!)")
    reporter.detail(f"  Base64 Certificate:       {chain.leaf_cert_b64.name}")
    reporter.detail(f"  Base64 Private Key:       {chain.leaf_key_b64.name}")
    reporter.detail()
    reporter.info("Next steps:")
    reporter.detail("  1. Deploy the bootstrap stack with the CA certificate:")
    reporter.detail("       devboot deploy")
    reporter.detail("  2. Add these as GitHub Codespaces secrets:")
    reporter.detail(f"       ROLES_ANYWHERE_CERTIFICATE      = contents of {chain.leaf_cert_b64.name}")
    reporter.detail(f"       ROLES_ANYWHERE_PRIVATE_KEY      = contents of {chain.leaf_key_b64.name}")
    reporter.detail("       ROLES_ANYWHERE_TRUST_ANCHOR_ARN = RolesAnywhereTrustAnchorArn output")
    reporter.detail("       ROLES_ANYWHERE_PROFILE_ARN      = RolesAnywhereProfileArn output")
    reporter.detail("       ROLES_ANYWHERE_ROLE_ARN         = DevcontainerRoleArn output")
    reporter.warning("Keep ca-key.pem and end-entity-key.pem secure; never commit them.")
