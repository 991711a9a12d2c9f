from cloudspec.testing.decorators import cloud_stack, cloud_test
from cloudspec.testing.stack_context import StackContext

__all__ = ["cloud_stack", "cloud_test", "StackContext"]
