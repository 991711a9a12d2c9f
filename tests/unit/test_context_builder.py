"""
Stack naming and deployment unit construction
"""
import re

import pytest

from cloudspec.common.constants import AUTO_DELETE_WARNING, StackNaming
from cloudspec.common.exceptions import ConfigurationError
from cloudspec.models.resource_graph import Bucket, CfnOutput, StateMachine, StateMachineType
from cloudspec.services.stack.context_builder import (
    StackContextBuilder, current_principal, derive_stack_name, sanitize_name,
)

VALID_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")


# ============================================================================
# Naming (table-driven)
# ============================================================================
class TestDeriveStackName:

    @pytest.mark.parametrize("group,principal,expected", [
        ("bucket", "alice", "CloudSpec-bucket-alice"),
        ("my test group", "alice", "CloudSpec-my-test-group-alice"),
        ("tests/test_bucket.py", "feature/snapshot_diff", "CloudSpec-tests-test-bucket-py-feature-snapshot-diff"),
        ("a__b..c", "ci", "CloudSpec-a-b-c-ci"),
    ])
    def test_sanitized(self, group, principal, expected):
        assert derive_stack_name(group, principal) == expected

    def test_deterministic(self):
        assert derive_stack_name("group", "bob") == derive_stack_name("group", "bob")

    @pytest.mark.parametrize("group", ["", "   "])
    def test_empty_group_is_rejected(self, group):
        with pytest.raises(ConfigurationError):
            derive_stack_name(group, "alice")

    def test_long_names_are_truncated_with_digest(self):
        first = derive_stack_name("a" * 200 + "-x", "alice")
        second = derive_stack_name("a" * 200 + "-y", "alice")

        assert len(first) == StackNaming.MAX_LENGTH
        assert len(second) == StackNaming.MAX_LENGTH
        assert first != second
        assert VALID_NAME.match(first)

    def test_sanitize_collapses_runs(self):
        assert sanitize_name("--a  b//c--") == "a-b-c"


class TestCurrentPrincipal:

    def test_branch_name_wins_in_ci(self, monkeypatch):
        monkeypatch.setenv("GITHUB_REF_NAME", "main")
        assert current_principal() == "main"

    def test_falls_back_to_os_user(self, monkeypatch):
        monkeypatch.delenv("GITHUB_REF_NAME", raising=False)
        monkeypatch.setattr("getpass.getuser", lambda: "carol")
        assert current_principal() == "carol"


# ============================================================================
# StackContextBuilder
# ============================================================================
class TestStackContextBuilder:

    @pytest.fixture
    def builder(self):
        return StackContextBuilder(principal="ci")

    def test_builds_tagged_and_rewritten_unit(self, builder):
        def construct(stack, register_outputs):
            bucket = Bucket(stack, "TestBucket")
            register_outputs({"bucketName": bucket.bucket_name})

        unit = builder.build("bucket", construct, origin="tests/test_bucket.py")

        assert unit.name == "CloudSpec-bucket-ci"
        assert unit.stack.stack_name == unit.name
        assert unit.tags == {"cloudspec": "true", "cloudspec:test-path": "tests/test_bucket.py"}
        assert unit.stack.tags == unit.tags

        (bucket,) = unit.auto_delete_buckets()
        assert bucket.deletion_policy == "Delete"
        assert bucket.annotations[0].message == AUTO_DELETE_WARNING
        assert unit.output_declarations == {"bucketName": {"Ref": bucket.logical_id}}

    def test_origin_defaults_to_group_name(self, builder):
        unit = builder.build("grp", lambda stack, register: None)
        assert unit.origin == "grp"
        assert unit.tags["cloudspec:test-path"] == "grp"

    def test_register_outputs_returns_declared_values(self, builder):
        captured = {}

        def construct(stack, register_outputs):
            machine = StateMachine.pass_state(stack, "Express", result={"hello": "express world"},
                                              state_machine_type=StateMachineType.EXPRESS)
            captured.update(register_outputs({"expressArn": machine.state_machine_arn}))

        unit = builder.build("express", construct)

        assert captured == {"expressArn": {"Ref": "Express"}}
        assert [c.id for c in unit.stack.children if isinstance(c, CfnOutput)] == ["expressArn"]

    def test_registering_twice_updates_the_output(self, builder):
        def construct(stack, register_outputs):
            register_outputs({"name": "first"})
            register_outputs({"name": "second"})

        unit = builder.build("twice", construct)

        outputs = [c for c in unit.stack.children if isinstance(c, CfnOutput)]
        assert len(outputs) == 1
        assert outputs[0].value == "second"
        assert unit.output_declarations == {"name": "second"}

    def test_construct_failure_is_configuration_error(self, builder):
        def construct(stack, register_outputs):
            raise ValueError("bad definition")

        with pytest.raises(ConfigurationError) as exc_info:
            builder.build("broken", construct)

        assert "bad definition" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_duplicate_construct_id_is_configuration_error(self, builder):
        def construct(stack, register_outputs):
            Bucket(stack, "Same")
            Bucket(stack, "Same")

        with pytest.raises(ConfigurationError, match="already a construct"):
            builder.build("dupes", construct)

    def test_non_callable_is_rejected(self, builder):
        with pytest.raises(ConfigurationError):
            builder.build("grp", None)

    def test_timeout_is_carried_on_the_unit(self, builder):
        unit = builder.build("grp", lambda stack, register: None, timeout_ms=5_000)
        assert unit.timeout_ms == 5_000
