"""
Bootstrap CloudFormation stack deployment.

Equivalent of ``aws cloudformation deploy --no-fail-on-empty-changeset``:
create a change set (CREATE or UPDATE depending on whether the stack
exists), wait for it, execute it, and wait for the stack to settle. An
empty change set is deleted and reported as "no changes".
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from devboot.core.exceptions import StackError
from devboot.core.reporting import Reporter

logger = logging.getLogger(__name__)

CAPABILITIES = ["CAPABILITY_NAMED_IAM"]

_NO_CHANGES_MARKERS = ("didn't contain changes", "No updates are to be performed")


class StackDeployer:
    """Validate, deploy and describe one CloudFormation stack."""

    def __init__(self, cloudformation: Any, ssm: Any, reporter: Reporter) -> None:
        self._cfn = cloudformation
        self._ssm = ssm
        self._reporter = reporter

    def validate(self, template_body: str) -> None:
        try:
            self._cfn.validate_template(TemplateBody=template_body)
        except ClientError as exc:
            raise StackError(f"Template validation failed: {exc}") from exc

    def stack_exists(self, name: str) -> bool:
        try:
            resp = self._cfn.describe_stacks(StackName=name)
        except ClientError as exc:
            if "does not exist" in str(exc):
                return False
            raise StackError(f"Cannot describe stack {name}: {exc}") from exc
        stacks = resp.get("Stacks", [])
        # a stack left in REVIEW_IN_PROGRESS by a failed first change set has no resources
        return bool(stacks) and stacks[0].get("StackStatus") != "REVIEW_IN_PROGRESS"

    def deploy(
        self,
        name: str,
        template_body: str,
        parameters: Mapping[str, str],
        tags: Mapping[str, str],
    ) -> bool:
        """Deploy the stack; return False when there was nothing to change."""
        exists = self.stack_exists(name)
        change_type = "UPDATE" if exists else "CREATE"
        self._reporter.info(
            "Stack exists, updating..." if exists else "Stack does not exist, creating..."
        )
        change_set_name = f"devboot-{int(time.time())}"

        try:
            self._cfn.create_change_set(
                StackName=name,
                ChangeSetName=change_set_name,
                ChangeSetType=change_type,
                TemplateBody=template_body,
                Capabilities=CAPABILITIES,
                Parameters=[
                    {"ParameterKey": k, "ParameterValue": v} for k, v in parameters.items()
                ],
                Tags=[{"Key": k, "Value": v} for k, v in tags.items()],
            )
        except ClientError as exc:
            raise StackError(f"Cannot create change set for {name}: {exc}") from exc

        try:
            self._cfn.get_waiter("change_set_create_complete").wait(
                StackName=name,
                ChangeSetName=change_set_name,
                WaiterConfig={"Delay": 5, "MaxAttempts": 120},
            )
        except WaiterError as exc:
            reason = self._change_set_reason(name, change_set_name)
            if any(marker in reason for marker in _NO_CHANGES_MARKERS):
                self._cfn.delete_change_set(StackName=name, ChangeSetName=change_set_name)
                self._reporter.info(f"No changes to deploy. Stack {name} is up to date")
                return False
            raise StackError(f"Change set failed: {reason or exc}") from exc

        self._reporter.info("Starting CloudFormation deployment...")
        waiter_name = "stack_update_complete" if exists else "stack_create_complete"
        try:
            self._cfn.execute_change_set(StackName=name, ChangeSetName=change_set_name)
            self._cfn.get_waiter(waiter_name).wait(
                StackName=name, WaiterConfig={"Delay": 10, "MaxAttempts": 360}
            )
        except (ClientError, WaiterError) as exc:
            raise StackError(
                f"Stack deployment failed: {exc}. Check events with: "
                f"aws cloudformation describe-stack-events --stack-name {name}"
            ) from exc
        return True

    def _change_set_reason(self, name: str, change_set_name: str) -> str:
        try:
            resp = self._cfn.describe_change_set(StackName=name, ChangeSetName=change_set_name)
        except ClientError:
            return ""
        return str(resp.get("StatusReason", ""))

    def outputs(self, name: str) -> dict[str, str]:
        try:
            resp = self._cfn.describe_stacks(StackName=name)
        except ClientError as exc:
            raise StackError(f"Cannot describe stack {name}: {exc}") from exc
        stacks = resp.get("Stacks", [])
        if not stacks:
            return {}
        return {o["OutputKey"]: o["OutputValue"] for o in stacks[0].get("Outputs", [])}

    def parameters_by_path(self, path: str) -> dict[str, str]:
        """Return SSM parameters under ``path``; empty on any error."""
        found: dict[str, str] = {}
        try:
            paginator = self._ssm.get_paginator("get_parameters_by_path")
            for page in paginator.paginate(Path=path, Recursive=True):
                for param in page.get("Parameters", []):
                    found[param["Name"]] = param.get("Value", "")
        except (BotoCoreError, ClientError) as exc:
            logger.info("Cannot list SSM parameters under %s: %s", path, exc)
        return found
