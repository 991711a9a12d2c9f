"""
StackContextBuilder - turns a test group's construct callback into a
tagged, policy-rewritten DeploymentUnit.

Names are derived from the group name and the invoking principal, so the
same developer (or CI branch) re-running the same group always targets the
same stack and updates it instead of leaving orphans behind.
"""

import getpass
import hashlib
import logging
import os
import re
from typing import Any, Callable, Dict, Mapping, Optional

from cloudspec.common.constants import StackNaming, StackTags, TimeoutConfig
from cloudspec.common.exceptions import ConfigurationError
from cloudspec.models.deployment import DeploymentUnit
from cloudspec.models.resource_graph import CfnOutput, Stack
from cloudspec.services.stack.policy_rewriter import ResourcePolicyRewriter

logger = logging.getLogger(__name__)

_NON_ALNUM_RUN = re.compile(r"[^A-Za-z0-9]+")

RegisterOutputs = Callable[[Mapping[str, Any]], Dict[str, Any]]
ConstructFn = Callable[[Stack, RegisterOutputs], Any]


def current_principal() -> str:
    """CI branch name when running in GitHub Actions, otherwise the OS user."""
    ref_name = os.environ.get("GITHUB_REF_NAME")
    if ref_name:
        return ref_name
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return os.environ.get("USER", "unknown")


def sanitize_name(raw: str) -> str:
    """Collapse every run of non-alphanumerics into one hyphen."""
    return _NON_ALNUM_RUN.sub("-", raw).strip("-")


def derive_stack_name(group_name: str, principal: str) -> str:
    """
    Deterministic stack name for (group, principal).

    Only [A-Za-z0-9-] survives. Names longer than CloudFormation accepts are
    cut and suffixed with a digest of the full name so two long group names
    sharing a prefix still map to different stacks.
    """
    if not group_name or not group_name.strip():
        raise ConfigurationError("group name must not be empty", field="group_name")

    name = sanitize_name(f"{StackNaming.PREFIX}-{group_name}-{principal}")
    if not name[:1].isalpha():
        name = f"{StackNaming.PREFIX}-{name}"

    if len(name) > StackNaming.MAX_LENGTH:
        digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:StackNaming.DIGEST_LENGTH]
        keep = StackNaming.MAX_LENGTH - StackNaming.DIGEST_LENGTH - 1
        name = f"{name[:keep].rstrip('-')}-{digest}"
    return name


class StackContextBuilder:

    def __init__(self, principal: Optional[str] = None, rewriter: Optional[ResourcePolicyRewriter] = None):
        self.principal = principal or current_principal()
        self.rewriter = rewriter or ResourcePolicyRewriter()

    def build(
        self,
        group_name: str,
        construct_fn: ConstructFn,
        timeout_ms: int = TimeoutConfig.SETUP_MS,
        origin: Optional[str] = None,
    ) -> DeploymentUnit:
        """
        Build the deployment unit for one test group.

        Args:
            group_name: test group identity (module, class, ...)
            construct_fn: ``fn(stack, register_outputs)`` declaring resources
            timeout_ms: deploy wait budget carried on the unit
            origin: test path recorded in the origin tag (defaults to group_name)

        Raises:
            ConfigurationError: empty group name, or construct_fn raised
        """
        if not callable(construct_fn):
            raise ConfigurationError("construct function must be callable", field="construct_fn")

        name = derive_stack_name(group_name, self.principal)
        stack = Stack(name)
        unit = DeploymentUnit(
            name=name,
            stack=stack,
            origin=origin or group_name,
            timeout_ms=timeout_ms,
        )

        unit.tags[StackTags.MARKER_KEY] = StackTags.MARKER_VALUE
        unit.tags[StackTags.TEST_PATH_KEY] = unit.origin[-StackTags.MAX_VALUE_LENGTH:]
        for key, value in unit.tags.items():
            stack.add_tag(key, value)

        def register_outputs(outputs: Mapping[str, Any]) -> Dict[str, Any]:
            for key, value in outputs.items():
                existing = next((c for c in stack.children if c.id == key), None)
                if isinstance(existing, CfnOutput):
                    existing.value = value
                else:
                    CfnOutput(stack, key, value=value)
                unit.output_declarations[key] = value
            return dict(outputs)

        try:
            construct_fn(stack, register_outputs)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"construct function for group '{group_name}' failed: {e}"
            ) from e

        report = self.rewriter.apply(stack)
        logger.info(
            "Built deployment unit %s (%d nodes, %d outputs)",
            name, report.visited, len(unit.output_declarations),
        )
        return unit
