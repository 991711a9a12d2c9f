"""
Template synthesis
"""
import json
import os

import pytest

from cloudspec.common.constants import MetadataKeys
from cloudspec.common.exceptions import ConfigurationError, DeploymentError
from cloudspec.models.resource_graph import Bucket, CfnResource, StateMachine, logical_id_for
from cloudspec.services.stack.context_builder import StackContextBuilder
from cloudspec.services.stack.synthesizer import TemplateSynthesizer


def _component_stack(stack, register_outputs):
    bucket = Bucket(stack, "TestBucket")
    standard = StateMachine.pass_state(stack, "Standard", result={"hello": "world"})
    express = StateMachine.pass_state(stack, "Express", result={"hello": "express world"},
                                      state_machine_type="EXPRESS")
    register_outputs({
        "bucketName": bucket.bucket_name,
        "standard-state-machine": standard.state_machine_arn,
        "expressStateMachine": express.state_machine_arn,
    })


@pytest.fixture
def unit():
    return StackContextBuilder(principal="ci").build("component", _component_stack)


@pytest.fixture
def synthesizer(tmp_path):
    return TemplateSynthesizer(str(tmp_path / "cdk.out"))


class TestTemplateSynthesizer:

    def test_writes_template_file(self, unit, synthesizer, tmp_path):
        template = synthesizer.synthesize(unit)

        assert template.path == os.path.join(str(tmp_path / "cdk.out"), "CloudSpec-component-ci.template.json")
        with open(template.path, encoding="utf-8") as f:
            assert json.load(f) == template.body

    def test_template_contains_no_retain_policies(self, unit, synthesizer):
        text = synthesizer.synthesize(unit).to_json()

        assert "Retain" not in text
        assert "Snapshot" not in text

    def test_resources_and_outputs(self, unit, synthesizer):
        body = synthesizer.synthesize(unit).body

        bucket = body["Resources"]["TestBucket"]
        assert bucket["Type"] == "AWS::S3::Bucket"
        assert bucket["DeletionPolicy"] == "Delete"
        assert bucket["Metadata"][MetadataKeys.AUTO_DELETE_OBJECTS] is True
        assert bucket["Metadata"][MetadataKeys.PATH] == "CloudSpec-component-ci/TestBucket"

        standard = body["Resources"]["Standard"]
        assert standard["Properties"]["StateMachineType"] == "STANDARD"
        assert standard["Properties"]["Definition"]["States"]["Pass"]["Result"] == {"hello": "world"}
        assert standard["DependsOn"] == [standard["Properties"]["RoleArn"]["Fn::GetAtt"][0]]

        assert body["Outputs"]["bucketName"] == {"Value": {"Ref": "TestBucket"}}
        assert body["Outputs"]["expressStateMachine"] == {"Value": {"Ref": "Express"}}

    def test_output_keys_map_back_to_registered_names(self, unit, synthesizer):
        template = synthesizer.synthesize(unit)

        assert template.output_keys["standardstatemachine"] == "standard-state-machine"
        assert template.output_keys["bucketName"] == "bucketName"

    def test_oversized_template_is_rejected(self, synthesizer):
        def huge(stack, register_outputs):
            CfnResource(stack, "Blob", "AWS::SSM::Parameter", {"Value": "x" * 60_000})

        unit = StackContextBuilder(principal="ci").build("huge", huge)

        with pytest.raises(DeploymentError, match="inline limit"):
            synthesizer.synthesize(unit)

    def test_default_outdir_is_created(self, unit):
        synthesizer = TemplateSynthesizer()
        template = synthesizer.synthesize(unit)
        assert os.path.isfile(template.path)

    def test_colliding_output_keys_are_rejected(self, synthesizer):
        def colliding(stack, register_outputs):
            register_outputs({"bucket-name": "a", "bucketname": "b"})

        unit = StackContextBuilder(principal="ci").build("colliding", colliding)

        with pytest.raises(ConfigurationError, match="duplicate output key"):
            synthesizer.render(unit)


class TestLogicalIds:

    def test_top_level_ids_are_kept(self, unit):
        bucket = next(n for n in unit.resources() if n.id == "TestBucket")
        assert bucket.logical_id == "TestBucket"

    def test_nested_ids_carry_a_digest(self, unit):
        role = next(n for n in unit.resources() if n.path.endswith("Standard/Role"))
        logical_id = logical_id_for(role)

        assert logical_id.startswith("StandardRole")
        assert len(logical_id) == len("StandardRole") + 8

    def test_stack_has_no_logical_id(self, unit):
        with pytest.raises(ConfigurationError):
            logical_id_for(unit.stack)
