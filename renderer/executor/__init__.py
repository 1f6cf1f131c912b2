"""FFMPEG command compilation and execution modules."""

from .command_builder import CommandBuilder, FilterChain, CompiledCommand, build_atempo_chain
from .operations import EditPlan, EditOperation, apply_operation, compile_plan
from .process_manager import (
    ProcessManager,
    ExecutionHandle,
    ExecutionResult,
    Progress,
    ProgressParser,
)

__all__ = [
    "CommandBuilder",
    "FilterChain",
    "CompiledCommand",
    "build_atempo_chain",
    "EditPlan",
    "EditOperation",
    "apply_operation",
    "compile_plan",
    "ProcessManager",
    "ExecutionHandle",
    "ExecutionResult",
    "Progress",
    "ProgressParser",
]
