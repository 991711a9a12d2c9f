"""
DeploymentUnit - one named, independently deployable collection of resources.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from cloudspec.models.resource_graph import Bucket, CfnResource, Stack

OutputSet = Dict[str, str]


@dataclass
class DeploymentUnit:
    """
    A sanitized stack name, its tags, its resource graph and the outputs the
    test declared. The graph belongs to this unit alone.
    """
    name: str
    stack: Stack
    tags: Dict[str, str] = field(default_factory=dict)
    output_declarations: Dict[str, Any] = field(default_factory=dict)
    origin: str = ""
    timeout_ms: int = 120_000

    def resources(self) -> List[CfnResource]:
        return [node for node in self.stack.find_all() if isinstance(node, CfnResource)]

    def auto_delete_buckets(self) -> List[Bucket]:
        return [
            node for node in self.stack.find_all()
            if getattr(node, "auto_delete_objects", False)
        ]
