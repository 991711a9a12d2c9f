"""
DeploymentController - provisions and tears down a DeploymentUnit through
CloudFormation.

Deploys go through change sets: CREATE for a new stack, UPDATE for an
existing one. An empty change set means the definition is unchanged and the
deploy is a no-op, which makes re-running a test group against its own
stack cheap. IAM capabilities are acknowledged up front so nothing ever
waits on an interactive approval.

Destroy is best-effort: buckets marked for auto-delete are emptied first
(CloudFormation refuses to delete a non-empty bucket), then the stack is
deleted. A failure is logged and reported through the return value; a
dangling stack must never fail an otherwise green suite.
"""

import json
import logging
import math
import os
import time
from typing import Callable, Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from cloudspec.common.aws_clients import get_cloudformation_client, get_s3_client
from cloudspec.common.config import CloudSpecSettings, get_settings
from cloudspec.common.constants import PollingConfig
from cloudspec.common.error_handlers import error_code_of, handle_cloudformation_error
from cloudspec.common.exceptions import DeploymentError, OutputsNotFoundError
from cloudspec.common.logging_utils import log_external_service_call, log_stack_event
from cloudspec.models.deployment import DeploymentUnit, OutputSet
from cloudspec.services.stack.synthesizer import SynthesizedTemplate, TemplateSynthesizer

logger = logging.getLogger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]

# Stack exists but holds nothing deployable; a new change set must be CREATE.
_CREATE_STATUSES = frozenset({"REVIEW_IN_PROGRESS"})

# Failed first create; the only way forward is delete-then-create.
_DEAD_STATUSES = frozenset({"ROLLBACK_COMPLETE", "ROLLBACK_FAILED", "DELETE_FAILED"})

_NO_CHANGE_MARKERS = ("didn't contain changes", "No updates are to be performed")

_DELETE_BATCH_SIZE = 1000


def waiter_config(timeout_ms: int, delay_seconds: int = PollingConfig.WAITER_DELAY_SECONDS) -> Dict[str, int]:
    """boto3 WaiterConfig covering ``timeout_ms``."""
    attempts = max(1, math.ceil(timeout_ms / 1000 / delay_seconds))
    return {"Delay": delay_seconds, "MaxAttempts": attempts}


class WaitBudget:
    """
    One deadline shared by every waiter of an operation. Each wait gets
    what is left of it; an exhausted budget still allows one attempt.
    """

    def __init__(self, timeout_ms: int, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.deadline = clock() + timeout_ms / 1000

    @property
    def remaining_ms(self) -> int:
        return max(0, int((self.deadline - self._clock()) * 1000))

    def waiter_config(self) -> Dict[str, int]:
        return waiter_config(self.remaining_ms)


class DeploymentController:

    def __init__(
        self,
        cloudformation_client=None,
        s3_client=None,
        synthesizer: Optional[TemplateSynthesizer] = None,
        settings: Optional[CloudSpecSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self._clock = clock
        self._cfn = cloudformation_client
        self._s3 = s3_client
        self.synthesizer = synthesizer or TemplateSynthesizer(self.settings.outdir)

    @property
    def cfn(self):
        """Lazy CloudFormation client initialization."""
        if self._cfn is None:
            self._cfn = get_cloudformation_client(self.settings.region)
        return self._cfn

    @property
    def s3(self):
        """Lazy S3 client initialization."""
        if self._s3 is None:
            self._s3 = get_s3_client(self.settings.region)
        return self._s3

    # =========================================================================
    # DEPLOY
    # =========================================================================

    @log_external_service_call("cloudformation", "deploy")
    def deploy(self, unit: DeploymentUnit, on_complete: Optional[Callable[[OutputSet], None]] = None) -> OutputSet:
        """
        Provision ``unit`` and return its resolved outputs.

        Raises:
            DeploymentError: the control plane reported a failure (not retried)
            OutputsNotFoundError: nothing was recorded under the unit's name
        """
        template = self.synthesizer.synthesize(unit)
        budget = WaitBudget(unit.timeout_ms, self._clock)

        try:
            status = self._stack_status(unit.name)
            if status in _DEAD_STATUSES:
                logger.warning("Stack %s is in %s from an earlier run; deleting before redeploy", unit.name, status)
                self._delete_stack(unit.name, budget)
                status = None

            change_set_type = "CREATE" if status is None or status in _CREATE_STATUSES else "UPDATE"
            changed = self._apply_change_set(unit, template, change_set_type, budget)
        except ClientError as e:
            converted = handle_cloudformation_error(e, "deploy", unit.name)
            raise DeploymentError(unit.name, str(converted)) from e

        outputs = self._read_outputs(unit, template)
        log_stack_event(
            "stack_deployed",
            unit.name,
            change_set_type=change_set_type,
            changed=changed,
            output_names=sorted(outputs),
        )
        if on_complete is not None:
            on_complete(outputs)
        return outputs

    def _stack_status(self, stack_name: str) -> Optional[str]:
        try:
            response = self.cfn.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if error_code_of(e) == "ValidationError" and "does not exist" in str(e):
                return None
            raise
        stacks = response.get("Stacks") or []
        return stacks[0]["StackStatus"] if stacks else None

    def _apply_change_set(
        self,
        unit: DeploymentUnit,
        template: SynthesizedTemplate,
        change_set_type: str,
        budget: WaitBudget,
    ) -> bool:
        """Create and execute a change set. Returns False when there was nothing to change."""
        change_set_name = f"cloudspec-{int(time.time() * 1000)}"
        response = self.cfn.create_change_set(
            StackName=unit.name,
            ChangeSetName=change_set_name,
            ChangeSetType=change_set_type,
            TemplateBody=template.to_json(),
            Capabilities=CAPABILITIES,
            Tags=[{"Key": key, "Value": value} for key, value in unit.tags.items()],
            Description=f"cloudspec {change_set_type.lower()} for {unit.origin}"[:1024],
        )
        change_set_id = response["Id"]

        try:
            self.cfn.get_waiter("change_set_create_complete").wait(
                ChangeSetName=change_set_id, StackName=unit.name, WaiterConfig=budget.waiter_config()
            )
        except WaiterError as e:
            described = self.cfn.describe_change_set(ChangeSetName=change_set_id, StackName=unit.name)
            reason = described.get("StatusReason", "")
            if described.get("Status") == "FAILED" and any(m in reason for m in _NO_CHANGE_MARKERS):
                logger.info("Stack %s is up to date; nothing to deploy", unit.name)
                self.cfn.delete_change_set(ChangeSetName=change_set_id, StackName=unit.name)
                return False
            raise DeploymentError(
                unit.name, "change set could not be created", status=described.get("Status"), reason=reason
            ) from e

        self.cfn.execute_change_set(ChangeSetName=change_set_id, StackName=unit.name)

        waiter_name = "stack_create_complete" if change_set_type == "CREATE" else "stack_update_complete"
        try:
            self.cfn.get_waiter(waiter_name).wait(StackName=unit.name, WaiterConfig=budget.waiter_config())
        except WaiterError as e:
            status = self._stack_status(unit.name)
            raise DeploymentError(
                unit.name,
                f"stack did not reach {waiter_name.replace('stack_', '').upper()}",
                status=status,
                reason=self._first_failure_reason(unit.name),
            ) from e
        return True

    def _first_failure_reason(self, stack_name: str) -> Optional[str]:
        """Oldest *_FAILED event reason, which names the resource that broke the deploy."""
        try:
            events = self.cfn.describe_stack_events(StackName=stack_name).get("StackEvents", [])
        except ClientError:
            logger.warning("Could not read stack events for %s", stack_name, exc_info=True)
            return None
        failures = [
            event for event in events
            if event.get("ResourceStatus", "").endswith("_FAILED") and event.get("ResourceStatusReason")
        ]
        if not failures:
            return None
        oldest = failures[-1]
        return f"{oldest.get('LogicalResourceId')}: {oldest.get('ResourceStatusReason')}"

    def _read_outputs(self, unit: DeploymentUnit, template: SynthesizedTemplate) -> OutputSet:
        response = self.cfn.describe_stacks(StackName=unit.name)
        stacks = response.get("Stacks") or []
        recorded: Dict[str, Dict[str, str]] = {}
        if stacks:
            recorded[unit.name] = {
                template.output_keys.get(item["OutputKey"], item["OutputKey"]): item["OutputValue"]
                for item in stacks[0].get("Outputs", [])
            }

        outputs_file = self._write_outputs_file(unit.name, recorded)
        with open(outputs_file, "r", encoding="utf-8") as f:
            by_stack = json.load(f)

        outputs = by_stack.get(unit.name)
        if outputs is None or (unit.output_declarations and not outputs):
            raise OutputsNotFoundError(unit.name)
        return outputs

    def _write_outputs_file(self, stack_name: str, recorded: Dict[str, Dict[str, str]]) -> str:
        path = os.path.join(self.synthesizer.resolve_outdir(), f"{stack_name}-outputs.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(recorded, f, indent=2, sort_keys=True)
        return path

    # =========================================================================
    # DESTROY
    # =========================================================================

    def destroy(self, unit: DeploymentUnit, timeout_ms: Optional[int] = None) -> bool:
        """
        Tear the stack down. Never raises for control-plane failures.

        Returns:
            True when the stack is gone, False when teardown failed
        """
        budget = WaitBudget(timeout_ms or self.settings.teardown_timeout_ms, self._clock)
        logger.info("Destroying stack %s", unit.name)
        try:
            for bucket in unit.auto_delete_buckets():
                self._purge_bucket_resource(unit.name, bucket.logical_id)
            self._delete_stack(unit.name, budget)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to destroy stack %s: %s", unit.name, e, exc_info=True)
            log_stack_event("stack_destroy_failed", unit.name, error=str(e))
            return False

        log_stack_event("stack_destroyed", unit.name)
        return True

    def _delete_stack(self, stack_name: str, budget: WaitBudget) -> None:
        self.cfn.delete_stack(StackName=stack_name)
        self.cfn.get_waiter("stack_delete_complete").wait(StackName=stack_name, WaiterConfig=budget.waiter_config())

    def _purge_bucket_resource(self, stack_name: str, logical_id: str) -> None:
        try:
            detail = self.cfn.describe_stack_resource(
                StackName=stack_name, LogicalResourceId=logical_id
            )["StackResourceDetail"]
        except ClientError as e:
            if error_code_of(e) == "ValidationError":
                logger.info("Bucket %s is not part of %s; nothing to empty", logical_id, stack_name)
                return
            raise
        bucket_name = detail.get("PhysicalResourceId")
        if bucket_name:
            self.empty_bucket(bucket_name)

    def empty_bucket(self, bucket_name: str) -> int:
        """Delete every object version and delete marker. Returns the count removed."""
        removed = 0
        paginator = self.s3.get_paginator("list_object_versions")
        try:
            for page in paginator.paginate(Bucket=bucket_name):
                entries = [
                    {"Key": item["Key"], "VersionId": item["VersionId"]}
                    for item in _chain(page.get("Versions"), page.get("DeleteMarkers"))
                ]
                for start in range(0, len(entries), _DELETE_BATCH_SIZE):
                    batch = entries[start:start + _DELETE_BATCH_SIZE]
                    self.s3.delete_objects(Bucket=bucket_name, Delete={"Objects": batch, "Quiet": True})
                    removed += len(batch)
        except ClientError as e:
            if error_code_of(e) == "NoSuchBucket":
                logger.info("Bucket %s already gone", bucket_name)
                return removed
            raise
        logger.info("Emptied bucket %s (%d objects)", bucket_name, removed)
        return removed


def _chain(*groups: Optional[Iterable[dict]]) -> List[dict]:
    items: List[dict] = []
    for group in groups:
        if group:
            items.extend(group)
    return items
