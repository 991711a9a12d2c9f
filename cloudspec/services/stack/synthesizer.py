"""
TemplateSynthesizer - renders a DeploymentUnit as a CloudFormation template.

The rendered template is written to ``<outdir>/<stack>.template.json`` so a
failed deploy can be inspected (or redeployed by hand) after the run.
"""

import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

from cloudspec.common.constants import MetadataKeys, TemplateLimits
from cloudspec.common.exceptions import ConfigurationError, DeploymentError
from cloudspec.models.deployment import DeploymentUnit
from cloudspec.models.resource_graph import CfnOutput, CfnResource

logger = logging.getLogger(__name__)


class SynthesizedTemplate:
    __slots__ = ("stack_name", "body", "path", "output_keys")

    def __init__(self, stack_name: str, body: Dict[str, Any], path: str, output_keys: Dict[str, str]):
        self.stack_name = stack_name
        self.body = body
        self.path = path
        # CloudFormation OutputKey -> name the test registered
        self.output_keys = output_keys

    def to_json(self) -> str:
        return json.dumps(self.body, indent=1, sort_keys=True)


class TemplateSynthesizer:

    def __init__(self, outdir: Optional[str] = None):
        self.outdir = outdir

    def resolve_outdir(self) -> str:
        if self.outdir is None:
            self.outdir = tempfile.mkdtemp(prefix="cloudspec-")
        os.makedirs(self.outdir, exist_ok=True)
        return self.outdir

    def render(self, unit: DeploymentUnit) -> Dict[str, Any]:
        resources: Dict[str, Any] = {}
        outputs: Dict[str, Any] = {}

        for node in unit.stack.find_all():
            if isinstance(node, CfnResource):
                logical_id = node.logical_id
                if logical_id in resources:
                    raise ConfigurationError(f"duplicate logical id {logical_id} at {node.path}")
                resources[logical_id] = self._render_resource(node)
            elif isinstance(node, CfnOutput):
                key = node.output_key
                if key in outputs:
                    raise ConfigurationError(f"duplicate output key {key} at {node.path}")
                entry: Dict[str, Any] = {"Value": node.value}
                if node.description:
                    entry["Description"] = node.description
                outputs[key] = entry

        template: Dict[str, Any] = {
            "AWSTemplateFormatVersion": "2010-09-09",
            "Description": unit.stack.description or f"cloudspec ephemeral stack ({unit.origin})",
            "Resources": resources,
        }
        if outputs:
            template["Outputs"] = outputs
        return template

    @staticmethod
    def _render_resource(node: CfnResource) -> Dict[str, Any]:
        rendered: Dict[str, Any] = {"Type": node.resource_type}
        if node.properties:
            rendered["Properties"] = node.properties
        if node.deletion_policy:
            rendered["DeletionPolicy"] = node.deletion_policy
        if node.update_replace_policy:
            rendered["UpdateReplacePolicy"] = node.update_replace_policy
        if node.depends_on:
            rendered["DependsOn"] = sorted(dep.logical_id for dep in node.depends_on)

        metadata = {MetadataKeys.PATH: node.path, **node.metadata}
        if getattr(node, "auto_delete_objects", False):
            metadata[MetadataKeys.AUTO_DELETE_OBJECTS] = True
        rendered["Metadata"] = metadata
        return rendered

    def synthesize(self, unit: DeploymentUnit) -> SynthesizedTemplate:
        body = self.render(unit)
        output_keys = {
            node.output_key: node.id
            for node in unit.stack.find_all() if isinstance(node, CfnOutput)
        }

        rendered = json.dumps(body, indent=1, sort_keys=True)
        size = len(rendered.encode("utf-8"))
        if size > TemplateLimits.MAX_INLINE_BODY_BYTES:
            raise DeploymentError(
                unit.name,
                f"template is {size} bytes, over the {TemplateLimits.MAX_INLINE_BODY_BYTES} byte inline limit",
            )

        path = os.path.join(self.resolve_outdir(), f"{unit.name}.template.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(rendered)

        logger.info("Synthesized %s (%d resources) to %s", unit.name, len(body["Resources"]), path)
        return SynthesizedTemplate(unit.name, body, path, output_keys)
