"""
ResourcePolicyRewriter - makes a resource graph safe to throw away.

Every node is classified by what it can do rather than by its class:

* policy-bearing: carries ``deletion_policy`` / ``update_replace_policy``
* object-store:   can ``enable_auto_delete_objects()``
* other:          nothing to rewrite

A node can be both policy-bearing and an object store (a bucket is).
Rewriting is local to one node and idempotent, so the traversal order
across siblings is irrelevant.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, List, Optional

from cloudspec.common.constants import AUTO_DELETE_WARNING
from cloudspec.models.resource_graph import DeletionPolicy

logger = logging.getLogger(__name__)

_POLICY_ATTRIBUTES = ("deletion_policy", "update_replace_policy")


class NodeKind(str, Enum):
    POLICY_BEARING = "policy_bearing"
    OBJECT_STORE = "object_store"
    OTHER = "other"


def classify(node: Any) -> FrozenSet[NodeKind]:
    """Capabilities of ``node``; ``{OTHER}`` when it has none."""
    kinds = set()
    if any(hasattr(node, attribute) for attribute in _POLICY_ATTRIBUTES):
        kinds.add(NodeKind.POLICY_BEARING)
    if callable(getattr(node, "enable_auto_delete_objects", None)):
        kinds.add(NodeKind.OBJECT_STORE)
    return frozenset(kinds) if kinds else frozenset({NodeKind.OTHER})


def rewrite_policy(policy: Optional[str]) -> Optional[str]:
    """The ResourcePolicyRule: any retain-type policy becomes Delete."""
    if policy in DeletionPolicy.RETAIN_TYPES:
        return DeletionPolicy.DELETE
    return None


@dataclass
class RewriteReport:
    visited: int = 0
    rewritten_policies: List[str] = field(default_factory=list)
    auto_delete_enabled: List[str] = field(default_factory=list)


class ResourcePolicyRewriter:
    """Walks a construct tree once and forces deletion-safe policies."""

    def apply(self, root: Any) -> RewriteReport:
        report = RewriteReport()
        seen = set()
        pending = [root]

        while pending:
            node = pending.pop()
            if id(node) in seen:
                continue
            seen.add(id(node))

            self._visit(node, report)
            report.visited += 1
            pending.extend(getattr(node, "children", ()))

        if report.rewritten_policies or report.auto_delete_enabled:
            logger.info(
                "Rewrote %d retention policies and enabled auto-delete on %d buckets (%d nodes visited)",
                len(report.rewritten_policies), len(report.auto_delete_enabled), report.visited,
            )
        return report

    def _visit(self, node: Any, report: RewriteReport) -> None:
        kinds = classify(node)
        path = getattr(node, "path", repr(node))

        if NodeKind.POLICY_BEARING in kinds:
            for attribute in _POLICY_ATTRIBUTES:
                replacement = rewrite_policy(getattr(node, attribute, None))
                if replacement is not None:
                    setattr(node, attribute, replacement)
                    report.rewritten_policies.append(f"{path}:{attribute}")

        if NodeKind.OBJECT_STORE in kinds:
            node.enable_auto_delete_objects()
            add_warning = getattr(node, "add_warning", None)
            if callable(add_warning):
                add_warning(AUTO_DELETE_WARNING)
            report.auto_delete_enabled.append(path)


def apply_ephemeral_policies(root: Any) -> RewriteReport:
    return ResourcePolicyRewriter().apply(root)
