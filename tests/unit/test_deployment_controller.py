"""
DeploymentController against a mocked CloudFormation client

Change set sequencing, no-op updates, failure reporting, outputs file and
best-effort destroy.
"""
import json
import os
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, WaiterError

from cloudspec.common.exceptions import DeploymentError, OutputsNotFoundError
from cloudspec.models.resource_graph import Bucket
from cloudspec.services.stack.context_builder import StackContextBuilder
from cloudspec.services.stack.deployment_controller import (
    CAPABILITIES, DeploymentController, WaitBudget, waiter_config,
)

STACK_NAME = "CloudSpec-bucket-ci"


def _client_error(code, message, operation):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _missing_stack():
    return _client_error("ValidationError", f"Stack with id {STACK_NAME} does not exist", "DescribeStacks")


def _stack(status, outputs=None):
    stack = {"StackName": STACK_NAME, "StackStatus": status}
    if outputs is not None:
        stack["Outputs"] = [{"OutputKey": k, "OutputValue": v} for k, v in outputs.items()]
    return {"Stacks": [stack]}


def _waiter_error(name):
    return WaiterError(name=name, reason="Waiter encountered a terminal failure state", last_response={})


def _bucket_stack(stack, register_outputs):
    bucket = Bucket(stack, "TestBucket")
    register_outputs({"bucketName": bucket.bucket_name})


@pytest.fixture
def unit():
    return StackContextBuilder(principal="ci").build("bucket", _bucket_stack, origin="tests/test_bucket.py")


@pytest.fixture
def cfn():
    client = MagicMock()
    client.create_change_set.return_value = {"Id": "arn:aws:cloudformation:us-east-1:123:changeSet/cs-1"}
    return client


@pytest.fixture
def s3():
    return MagicMock()


@pytest.fixture
def controller(cfn, s3, settings):
    return DeploymentController(cloudformation_client=cfn, s3_client=s3, settings=settings)


def _failing_waiter(cfn, failing_name):
    waiters = {}

    def get_waiter(name):
        waiter = waiters.setdefault(name, MagicMock(name=name))
        if name == failing_name:
            waiter.wait.side_effect = _waiter_error(name)
        return waiter

    cfn.get_waiter.side_effect = get_waiter
    return waiters


# ============================================================================
# Deploy
# ============================================================================
class TestDeploy:

    def test_creates_new_stack_and_records_outputs(self, controller, cfn, unit, settings):
        cfn.describe_stacks.side_effect = [
            _missing_stack(),
            _stack("CREATE_COMPLETE", {"bucketName": "cloudspec-bucket-abc"}),
        ]
        received = []

        outputs = controller.deploy(unit, on_complete=received.append)

        assert outputs == {"bucketName": "cloudspec-bucket-abc"}
        assert received == [outputs]

        kwargs = cfn.create_change_set.call_args.kwargs
        assert kwargs["StackName"] == STACK_NAME
        assert kwargs["ChangeSetType"] == "CREATE"
        assert kwargs["Capabilities"] == CAPABILITIES
        assert {"Key": "cloudspec", "Value": "true"} in kwargs["Tags"]
        assert {"Key": "cloudspec:test-path", "Value": "tests/test_bucket.py"} in kwargs["Tags"]
        assert '"DeletionPolicy": "Delete"' in kwargs["TemplateBody"]

        cfn.execute_change_set.assert_called_once()
        waited = [c.args[0] for c in cfn.get_waiter.call_args_list]
        assert waited == ["change_set_create_complete", "stack_create_complete"]

        outputs_file = os.path.join(settings.outdir, f"{STACK_NAME}-outputs.json")
        with open(outputs_file, encoding="utf-8") as f:
            assert json.load(f) == {STACK_NAME: {"bucketName": "cloudspec-bucket-abc"}}

    def test_existing_stack_is_updated(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [
            _stack("UPDATE_COMPLETE"),
            _stack("UPDATE_COMPLETE", {"bucketName": "b"}),
        ]

        controller.deploy(unit)

        assert cfn.create_change_set.call_args.kwargs["ChangeSetType"] == "UPDATE"
        assert cfn.get_waiter.call_args_list[-1].args[0] == "stack_update_complete"

    def test_unchanged_stack_is_a_no_op(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [
            _stack("CREATE_COMPLETE"),
            _stack("CREATE_COMPLETE", {"bucketName": "b"}),
        ]
        _failing_waiter(cfn, "change_set_create_complete")
        cfn.describe_change_set.return_value = {
            "Status": "FAILED",
            "StatusReason": "The submitted information didn't contain changes. Submit different information.",
        }

        outputs = controller.deploy(unit)

        assert outputs == {"bucketName": "b"}
        cfn.execute_change_set.assert_not_called()
        cfn.delete_change_set.assert_called_once()

    def test_rejected_change_set_is_deployment_error(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [_missing_stack()]
        _failing_waiter(cfn, "change_set_create_complete")
        cfn.describe_change_set.return_value = {"Status": "FAILED", "StatusReason": "Template format error"}

        with pytest.raises(DeploymentError) as exc_info:
            controller.deploy(unit)

        assert exc_info.value.reason == "Template format error"
        cfn.execute_change_set.assert_not_called()

    def test_failed_stack_reports_first_failure(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [_missing_stack(), _stack("ROLLBACK_COMPLETE")]
        _failing_waiter(cfn, "stack_create_complete")
        cfn.describe_stack_events.return_value = {"StackEvents": [
            {"LogicalResourceId": STACK_NAME, "ResourceStatus": "ROLLBACK_COMPLETE"},
            {"LogicalResourceId": "TestBucket", "ResourceStatus": "DELETE_FAILED",
             "ResourceStatusReason": "later noise"},
            {"LogicalResourceId": "TestBucket", "ResourceStatus": "CREATE_FAILED",
             "ResourceStatusReason": "Bucket already exists"},
        ]}

        with pytest.raises(DeploymentError) as exc_info:
            controller.deploy(unit)

        error = exc_info.value
        assert error.stack_name == STACK_NAME
        assert error.status == "ROLLBACK_COMPLETE"
        assert error.reason == "TestBucket: Bucket already exists"

    def test_dead_stack_is_deleted_before_create(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [
            _stack("ROLLBACK_COMPLETE"),
            _stack("CREATE_COMPLETE", {"bucketName": "b"}),
        ]

        controller.deploy(unit)

        cfn.delete_stack.assert_called_once_with(StackName=STACK_NAME)
        assert cfn.create_change_set.call_args.kwargs["ChangeSetType"] == "CREATE"

    def test_waiters_share_one_deadline(self, cfn, s3, settings):
        unit = StackContextBuilder(principal="ci").build("bucket", _bucket_stack, timeout_ms=120_000)
        now = [0.0]

        def slow_wait(**kwargs):
            now[0] += 50

        cfn.get_waiter.return_value.wait.side_effect = slow_wait
        cfn.describe_stacks.side_effect = [
            _stack("ROLLBACK_COMPLETE"),
            _stack("CREATE_COMPLETE", {"bucketName": "b"}),
        ]
        controller = DeploymentController(cloudformation_client=cfn, s3_client=s3, settings=settings,
                                          clock=lambda: now[0])

        controller.deploy(unit)

        waits = cfn.get_waiter.return_value.wait.call_args_list
        # delete, change set, create: 120s, then 70s, then 20s left
        assert [c.kwargs["WaiterConfig"]["MaxAttempts"] for c in waits] == [24, 14, 4]

    def test_client_error_is_deployment_error(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [_missing_stack()]
        cfn.create_change_set.side_effect = _client_error("AccessDenied", "not allowed", "CreateChangeSet")

        with pytest.raises(DeploymentError, match="access denied"):
            controller.deploy(unit)

    def test_missing_outputs(self, controller, cfn, unit):
        cfn.describe_stacks.side_effect = [_missing_stack(), _stack("CREATE_COMPLETE")]

        with pytest.raises(OutputsNotFoundError, match=STACK_NAME):
            controller.deploy(unit)

    def test_output_names_are_mapped_back(self, controller, cfn):
        def construct(stack, register_outputs):
            register_outputs({"bucket-name": "literal"})

        unit = StackContextBuilder(principal="ci").build("bucket", construct)
        cfn.describe_stacks.side_effect = [
            _missing_stack(),
            _stack("CREATE_COMPLETE", {"bucketname": "literal"}),
        ]

        assert controller.deploy(unit) == {"bucket-name": "literal"}


# ============================================================================
# Destroy
# ============================================================================
class TestDestroy:

    def test_empties_buckets_then_deletes_stack(self, controller, cfn, s3, unit):
        cfn.describe_stack_resource.return_value = {
            "StackResourceDetail": {"LogicalResourceId": "TestBucket", "PhysicalResourceId": "phys-bucket"}
        }
        s3.get_paginator.return_value.paginate.return_value = [{
            "Versions": [{"Key": "a.txt", "VersionId": "v1"}, {"Key": "b.txt", "VersionId": "null"}],
            "DeleteMarkers": [{"Key": "c.txt", "VersionId": "v3"}],
        }]

        assert controller.destroy(unit) is True

        s3.delete_objects.assert_called_once_with(Bucket="phys-bucket", Delete={
            "Objects": [
                {"Key": "a.txt", "VersionId": "v1"},
                {"Key": "b.txt", "VersionId": "null"},
                {"Key": "c.txt", "VersionId": "v3"},
            ],
            "Quiet": True,
        })
        cfn.delete_stack.assert_called_once_with(StackName=STACK_NAME)
        cfn.get_waiter.assert_called_with("stack_delete_complete")

    def test_failure_is_swallowed(self, controller, cfn, unit):
        cfn.describe_stack_resource.side_effect = _client_error(
            "ValidationError", f"Stack {STACK_NAME} does not exist", "DescribeStackResource"
        )
        cfn.delete_stack.side_effect = _client_error("AccessDenied", "nope", "DeleteStack")

        assert controller.destroy(unit) is False

    def test_waiter_timeout_is_swallowed(self, controller, cfn, unit):
        cfn.describe_stack_resource.side_effect = _client_error("ValidationError", "gone", "DescribeStackResource")
        _failing_waiter(cfn, "stack_delete_complete")

        assert controller.destroy(unit) is False
        cfn.delete_stack.assert_called_once()

    def test_large_buckets_are_deleted_in_batches(self, controller, s3):
        s3.get_paginator.return_value.paginate.return_value = [{
            "Versions": [{"Key": f"k{i}", "VersionId": "null"} for i in range(2500)],
        }]

        assert controller.empty_bucket("phys-bucket") == 2500
        assert [len(c.kwargs["Delete"]["Objects"]) for c in s3.delete_objects.call_args_list] == [1000, 1000, 500]

    def test_missing_bucket_counts_as_empty(self, controller, s3):
        s3.get_paginator.return_value.paginate.side_effect = _client_error(
            "NoSuchBucket", "gone", "ListObjectVersions"
        )
        assert controller.empty_bucket("phys-bucket") == 0


@pytest.mark.parametrize("timeout_ms,attempts", [
    (120_000, 24),
    (600_000, 120),
    (1, 1),
    (7_000, 2),
])
def test_waiter_config(timeout_ms, attempts):
    assert waiter_config(timeout_ms) == {"Delay": 5, "MaxAttempts": attempts}


def test_exhausted_budget_still_waits_once():
    now = [0.0]
    budget = WaitBudget(10_000, clock=lambda: now[0])

    now[0] = 4.0
    assert budget.remaining_ms == 6_000
    now[0] = 30.0
    assert budget.remaining_ms == 0
    assert budget.waiter_config() == {"Delay": 5, "MaxAttempts": 1}
