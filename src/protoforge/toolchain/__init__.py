"""External tool invocation: invoker, runners and generator plans."""

from .commands import DESCRIPTOR_SET_NAME, GeneratorStep, find_sources, plan_formatting, plan_generation
from .invoker import InvocationResult, ToolchainInvoker, stderr_tail
from .runners import ContainerRunner, LocalRunner, ToolRunner, create_runner, detect_protoc_platform

__all__ = [
    "ContainerRunner",
    "DESCRIPTOR_SET_NAME",
    "GeneratorStep",
    "InvocationResult",
    "LocalRunner",
    "ToolRunner",
    "ToolchainInvoker",
    "create_runner",
    "detect_protoc_platform",
    "find_sources",
    "plan_formatting",
    "plan_generation",
    "stderr_tail",
]
