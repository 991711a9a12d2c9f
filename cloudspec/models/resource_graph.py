"""
Resource graph: a construct tree of raw CloudFormation resources.

This is the minimum a test needs to declare a bucket, a state machine and
the outputs it wants back; anything richer belongs in a real definition
layer. Every node knows its scope (parent) and children, so a stack can be
walked, rewritten and synthesized without class-specific dispatch.

    stack = Stack("CloudSpec-demo-ci")
    bucket = Bucket(stack, "TestBucket")
    CfnOutput(stack, "bucketName", value=bucket.ref)
"""
import hashlib
import re
from typing import Any, Dict, Iterator, List, Optional

from cloudspec.common.exceptions import ConfigurationError

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


class DeletionPolicy:
    DELETE = "Delete"
    RETAIN = "Retain"
    SNAPSHOT = "Snapshot"
    RETAIN_EXCEPT_ON_CREATE = "RetainExceptOnCreate"

    RETAIN_TYPES = frozenset({RETAIN, SNAPSHOT, RETAIN_EXCEPT_ON_CREATE})


class Annotation:
    __slots__ = ("level", "message")

    def __init__(self, level: str, message: str):
        self.level = level
        self.message = message

    def __repr__(self):
        return f"Annotation({self.level}: {self.message})"


class Construct:
    """A node in the tree. ``scope`` is None only for the root."""

    def __init__(self, scope: Optional["Construct"], construct_id: str):
        if not construct_id:
            raise ConfigurationError("construct id must be a non-empty string")
        self.scope = scope
        self.id = construct_id
        self.children: List["Construct"] = []
        self.annotations: List[Annotation] = []
        if scope is not None:
            scope._add_child(self)

    def _add_child(self, child: "Construct") -> None:
        if any(existing.id == child.id for existing in self.children):
            raise ConfigurationError(
                f"There is already a construct with id '{child.id}' in {self.path or 'the root'}"
            )
        self.children.append(child)

    @property
    def path(self) -> str:
        parts = []
        node = self
        while node is not None:
            parts.append(node.id)
            node = node.scope
        return "/".join(reversed(parts))

    @property
    def stack(self) -> "Stack":
        node = self
        while node.scope is not None:
            node = node.scope
        return node

    def add_warning(self, message: str) -> None:
        if not any(a.level == "warning" and a.message == message for a in self.annotations):
            self.annotations.append(Annotation("warning", message))

    def add_info(self, message: str) -> None:
        self.annotations.append(Annotation("info", message))

    def find_all(self) -> Iterator["Construct"]:
        """Pre-order walk over this node and its descendants."""
        pending = [self]
        while pending:
            node = pending.pop()
            yield node
            pending.extend(reversed(node.children))

    def __repr__(self):
        return f"{type(self).__name__}({self.path})"


class Stack(Construct):
    """Root of a deployment unit's graph"""

    def __init__(self, stack_name: str):
        super().__init__(None, stack_name)
        self.stack_name = stack_name
        self.tags: Dict[str, str] = {}
        self.description: Optional[str] = None

    def add_tag(self, key: str, value: str) -> None:
        self.tags[key] = value


class CfnResource(Construct):
    """A raw CloudFormation resource"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        resource_type: str,
        properties: Optional[Dict[str, Any]] = None,
        deletion_policy: Optional[str] = None,
        update_replace_policy: Optional[str] = None,
    ):
        super().__init__(scope, construct_id)
        self.resource_type = resource_type
        self.properties: Dict[str, Any] = dict(properties or {})
        self.deletion_policy = deletion_policy
        self.update_replace_policy = update_replace_policy
        self.metadata: Dict[str, Any] = {}
        self.depends_on: List["CfnResource"] = []

    @property
    def logical_id(self) -> str:
        return logical_id_for(self)

    @property
    def ref(self) -> Dict[str, str]:
        return {"Ref": self.logical_id}

    def get_att(self, attribute: str) -> Dict[str, List[str]]:
        return {"Fn::GetAtt": [self.logical_id, attribute]}

    def add_dependency(self, other: "CfnResource") -> None:
        if other not in self.depends_on:
            self.depends_on.append(other)


class Bucket(CfnResource):
    """
    AWS::S3::Bucket.

    Retained on deletion by default, which is what the policy rewriter
    exists to undo for ephemeral stacks.
    """

    def __init__(self, scope: Construct, construct_id: str, bucket_name: Optional[str] = None,
                 versioned: bool = False, **properties):
        props = dict(properties)
        if bucket_name:
            props["BucketName"] = bucket_name
        if versioned:
            props["VersioningConfiguration"] = {"Status": "Enabled"}
        super().__init__(
            scope, construct_id, "AWS::S3::Bucket", props,
            deletion_policy=DeletionPolicy.RETAIN,
            update_replace_policy=DeletionPolicy.RETAIN,
        )
        self.auto_delete_objects = False

    @property
    def bucket_name(self) -> Dict[str, str]:
        return self.ref

    @property
    def bucket_arn(self):
        return self.get_att("Arn")

    def enable_auto_delete_objects(self) -> None:
        """Empty the bucket before the stack deletes it."""
        self.auto_delete_objects = True


class Role(CfnResource):
    """AWS::IAM::Role assumable by one service principal"""

    def __init__(self, scope: Construct, construct_id: str, assumed_by: str,
                 managed_policy_arns: Optional[List[str]] = None,
                 inline_policies: Optional[Dict[str, Dict[str, Any]]] = None):
        props: Dict[str, Any] = {
            "AssumeRolePolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"Service": assumed_by},
                    "Action": "sts:AssumeRole",
                }],
            },
        }
        if managed_policy_arns:
            props["ManagedPolicyArns"] = list(managed_policy_arns)
        if inline_policies:
            props["Policies"] = [
                {"PolicyName": name, "PolicyDocument": document}
                for name, document in inline_policies.items()
            ]
        super().__init__(scope, construct_id, "AWS::IAM::Role", props)

    @property
    def role_arn(self):
        return self.get_att("Arn")


class StateMachineType:
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"


class StateMachine(CfnResource):
    """
    AWS::StepFunctions::StateMachine with its own execution role.

    ``definition`` is an Amazon States Language document (a dict).
    """

    def __init__(self, scope: Construct, construct_id: str, definition: Dict[str, Any],
                 state_machine_type: str = StateMachineType.STANDARD,
                 role: Optional[Role] = None):
        if state_machine_type not in (StateMachineType.STANDARD, StateMachineType.EXPRESS):
            raise ConfigurationError(f"unknown state machine type {state_machine_type!r}")
        super().__init__(scope, construct_id, "AWS::StepFunctions::StateMachine", {
            "Definition": definition,
            "StateMachineType": state_machine_type,
        })
        if role is None:
            role = Role(self, "Role", assumed_by="states.amazonaws.com")
        self.role = role
        self.properties["RoleArn"] = role.role_arn
        self.add_dependency(role)

    @property
    def state_machine_arn(self) -> Dict[str, str]:
        return self.ref

    @classmethod
    def pass_state(cls, scope: Construct, construct_id: str, result: Any,
                   state_machine_type: str = StateMachineType.STANDARD) -> "StateMachine":
        """Single Pass state returning ``result``."""
        definition = {
            "StartAt": "Pass",
            "States": {"Pass": {"Type": "Pass", "Result": result, "End": True}},
        }
        return cls(scope, construct_id, definition, state_machine_type)


class CfnOutput(Construct):
    """A stack output. ``value`` is a string or a Ref/GetAtt token."""

    def __init__(self, scope: Construct, construct_id: str, value: Any, description: Optional[str] = None):
        super().__init__(scope, construct_id)
        if value is None:
            raise ConfigurationError(f"output '{construct_id}' has no value")
        self.value = value
        self.description = description

    @property
    def output_key(self) -> str:
        # Declared at stack level: the id is the key read back after deploy.
        if self.scope is self.stack:
            return _NON_ALNUM.sub("", self.id)
        return logical_id_for(self)


def logical_id_for(node: Construct) -> str:
    """
    Stable logical id: alphanumeric path components (root excluded) plus an
    8-hex digest of the full path, so sibling trees never collide.
    """
    components = node.path.split("/")[1:]
    if not components:
        raise ConfigurationError("the stack itself has no logical id")
    human = "".join(_NON_ALNUM.sub("", c) for c in components)
    digest = hashlib.md5("/".join(components).encode("utf-8")).hexdigest()[:8].upper()
    if len(components) == 1:
        return human or digest
    return f"{human}{digest}"
