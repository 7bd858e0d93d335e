"""convoflow - conversational flow engine.

Loads flow documents produced by the visual flow designer and walks them one
user answer at a time: what to ask next, which side effects to run, and when
the conversation is complete.
"""

from .config import EngineConfig
from .engine import FlowEngine
from .errors import BranchResolutionError, DefinitionError, FlowError
from .invoker import ActionCall, ActionInvoker, ActionResult, HttpActionInvoker, NullActionInvoker
from .runner import FlowRunner
from .adapters.control_adapter import evaluate, select_output
from .adapters.variable_adapter import render
from .visual.builtins import validate_answer
from .visual.interfaces import load_flow, validate_flow
from .visual.models import ExecutionResult, FlowDefinition, FlowState, SessionStatus, ValidationResult

__version__ = "0.1.0"

__all__ = [
    "ActionCall",
    "ActionInvoker",
    "ActionResult",
    "BranchResolutionError",
    "DefinitionError",
    "EngineConfig",
    "ExecutionResult",
    "FlowDefinition",
    "FlowEngine",
    "FlowError",
    "FlowRunner",
    "FlowState",
    "HttpActionInvoker",
    "NullActionInvoker",
    "SessionStatus",
    "ValidationResult",
    "evaluate",
    "load_flow",
    "render",
    "select_output",
    "validate_answer",
    "validate_flow",
]
