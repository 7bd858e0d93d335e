"""Pydantic models for the conversational flow JSON format.

These models mirror the document produced by the visual flow designer so a
flow authored in the editor can be loaded and executed from any host (CLI,
web backend, background workers) without importing editor code.

Definition models are frozen: a FlowDefinition is shared read-only across
sessions. `FlowState` and `ExecutionResult` are the per-session values the
engine receives and returns.
"""

from __future__ import annotations

from enum import Enum
import uuid
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class NodeType(str, Enum):
    """Types of nodes in the flow designer."""

    START = "start"
    MESSAGE = "message"
    QUESTION = "question"
    COLLECT_INPUT = "collect-input"
    CONDITION = "condition"
    ACTION = "action"
    WAIT = "wait"
    API_CALL = "api-call"
    WEBHOOK = "webhook"
    END = "end"


class SessionStatus(str, Enum):
    RUNNING = "running"
    AWAITING_ANSWER = "awaiting-answer"
    COMPLETE = "complete"
    ERRORED = "errored"


# Well-known source handles.
HANDLE_TRUE = "true"
HANDLE_FALSE = "false"
HANDLE_SUCCESS = "success"
HANDLE_ERROR = "error"
HANDLE_MAX_RETRIES = "max-retries"


class _Definition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")


class Position(_Definition):
    """2D position on canvas (editor-only)."""

    x: float = 0
    y: float = 0


# ---------------------------------------------------------------------------
# Rules and conditions
# ---------------------------------------------------------------------------

RuleOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "starts_with",
    "ends_with",
    "is_empty",
    "is_not_empty",
    "in_list",
    "not_in_list",
]


class Rule(_Definition):
    """A single comparison between a flow variable and a literal."""

    id: Optional[str] = None
    field: str
    operator: RuleOperator
    value: Any = None


class ConditionOutput(_Definition):
    """One branch of a multi-output condition (selected by `value` handle)."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    value: str
    label: str = ""
    description: Optional[str] = None
    rules: List[Rule] = Field(default_factory=list)
    operator: Literal["and", "or"] = "and"
    isDefault: bool = False


class Condition(_Definition):
    operator: Literal["and", "or"] = "and"
    rules: List[Rule] = Field(default_factory=list)
    outputs: List[ConditionOutput] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Node data
# ---------------------------------------------------------------------------


class ValidationRule(_Definition):
    """Answer validation rule (`{type, value?, message?}`)."""

    type: Literal["required", "email", "phone", "minLength", "maxLength", "pattern"]
    value: Any = None
    message: Optional[str] = None


class Option(_Definition):
    id: str
    label: str = ""
    value: str = ""
    nextNodeId: Optional[str] = None


class StartData(_Definition):
    label: str = ""


class MessageData(_Definition):
    label: str = ""
    content: str = ""


class QuestionData(_Definition):
    label: str = ""
    text: Optional[str] = None
    question: Optional[str] = None
    questionType: Literal["text", "multiple-choice", "yes-no", "rating", "email", "phone"] = "text"
    options: List[Option] = Field(default_factory=list)
    validation: List[ValidationRule] = Field(default_factory=list)
    required: bool = False
    variableName: Optional[str] = None
    allowFreeText: bool = False
    maxRetries: Optional[int] = None

    @property
    def prompt(self) -> str:
        for candidate in (self.text, self.question, self.label):
            if isinstance(candidate, str) and candidate.strip():
                return candidate
        return "Please provide your answer."

    @property
    def is_choice(self) -> bool:
        return self.questionType in ("multiple-choice", "yes-no") and bool(self.options)


class ConditionData(_Definition):
    label: str = ""
    conditionType: Literal["simple", "multi-output"] = "simple"
    condition: Condition = Field(default_factory=Condition)

    @property
    def is_multi_output(self) -> bool:
        return self.conditionType == "multi-output"


class HttpCallConfig(_Definition):
    """Request description shared by api-call/webhook nodes and API actions."""

    method: str = "GET"
    url: str = ""
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    timeout: Optional[int] = None  # milliseconds
    responseMapping: Dict[str, str] = Field(default_factory=dict)
    resultVariable: Optional[str] = None


class ApiCallData(HttpCallConfig):
    label: str = ""


class WebhookData(HttpCallConfig):
    label: str = ""
    method: str = "POST"


class Action(_Definition):
    type: Literal["set_variable", "call_api", "send_webhook", "wait"]
    config: Dict[str, Any] = Field(default_factory=dict)


class ActionData(_Definition):
    label: str = ""
    action: Action


class WaitData(_Definition):
    label: str = ""
    duration: float = 0
    unit: Literal["ms", "seconds", "minutes", "hours"] = "ms"


class EndData(_Definition):
    label: str = ""
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Nodes (tagged union on `type`)
# ---------------------------------------------------------------------------


class _BaseNode(_Definition):
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    position: Position = Field(default_factory=Position)


class StartNode(_BaseNode):
    type: Literal["start"] = "start"
    data: StartData = Field(default_factory=StartData)


class MessageNode(_BaseNode):
    type: Literal["message"] = "message"
    data: MessageData = Field(default_factory=MessageData)


class QuestionNode(_BaseNode):
    type: Literal["question"] = "question"
    data: QuestionData = Field(default_factory=QuestionData)


class CollectInputNode(_BaseNode):
    type: Literal["collect-input"] = "collect-input"
    data: QuestionData = Field(default_factory=QuestionData)


class ConditionNode(_BaseNode):
    type: Literal["condition"] = "condition"
    data: ConditionData = Field(default_factory=ConditionData)


class ActionNode(_BaseNode):
    type: Literal["action"] = "action"
    data: ActionData


class WaitNode(_BaseNode):
    type: Literal["wait"] = "wait"
    data: WaitData = Field(default_factory=WaitData)


class ApiCallNode(_BaseNode):
    type: Literal["api-call"] = "api-call"
    data: ApiCallData = Field(default_factory=ApiCallData)


class WebhookNode(_BaseNode):
    type: Literal["webhook"] = "webhook"
    data: WebhookData = Field(default_factory=WebhookData)


class EndNode(_BaseNode):
    type: Literal["end"] = "end"
    data: EndData = Field(default_factory=EndData)


FlowNode = Annotated[
    Union[
        StartNode,
        MessageNode,
        QuestionNode,
        CollectInputNode,
        ConditionNode,
        ActionNode,
        WaitNode,
        ApiCallNode,
        WebhookNode,
        EndNode,
    ],
    Field(discriminator="type"),
]

QUESTION_NODE_TYPES = (QuestionNode, CollectInputNode)


class FlowEdge(_Definition):
    """A directed connection, optionally qualified by the source handle."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    label: Optional[str] = None
    condition: Optional[Condition] = None


class Variable(_Definition):
    id: Optional[str] = None
    name: str
    type: Literal["string", "number", "boolean", "array", "object"] = "string"
    scope: Literal["global", "local"] = "global"
    defaultValue: Any = None
    description: Optional[str] = None


class FlowSettings(_Definition):
    """Flow-level settings. Editor keys (grid, theme, ...) pass through untouched."""

    allowSkip: bool = False


class FlowDefinition(_Definition):
    """A complete conversational flow definition."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    name: str
    description: Optional[str] = None
    version: str = "1.0.0"
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    settings: FlowSettings = Field(default_factory=FlowSettings)

    def get_node(self, node_id: Optional[str]) -> Optional[Any]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


# ---------------------------------------------------------------------------
# Session state and results
# ---------------------------------------------------------------------------


class TranscriptEntry(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class WaitRecord(BaseModel):
    """An intended delay the hosting application may honour."""

    nodeId: str
    durationMs: int


class EngineError(BaseModel):
    kind: Literal["definition", "branch_resolution"]
    message: str
    nodeId: Optional[str] = None
    details: List[Dict[str, Any]] = Field(default_factory=list)


class FlowState(BaseModel):
    """Mutable, session-scoped state owned by exactly one session."""

    variables: Dict[str, Any] = Field(default_factory=dict)
    currentNodeId: Optional[str] = None
    status: SessionStatus = SessionStatus.RUNNING
    isComplete: bool = False
    messages: List[TranscriptEntry] = Field(default_factory=list)
    retries: Dict[str, int] = Field(default_factory=dict)
    waits: List[WaitRecord] = Field(default_factory=list)
    error: Optional[EngineError] = None


class NextQuestion(BaseModel):
    id: str
    text: str
    type: str = "text"
    options: List[Option] = Field(default_factory=list)
    required: bool = False
    variableName: Optional[str] = None


class ExecutionResult(BaseModel):
    """The sole output contract of every engine entry point."""

    nextQuestion: Optional[NextQuestion] = None
    isComplete: bool = False
    status: SessionStatus = SessionStatus.RUNNING
    messages: List[TranscriptEntry] = Field(default_factory=list)
    flowState: FlowState = Field(default_factory=FlowState)
    error: Optional[EngineError] = None


class ValidationError(BaseModel):
    type: str
    message: str
    nodeId: Optional[str] = None
    edgeId: Optional[str] = None
    severity: Literal["error", "warning"] = "error"


class ValidationResult(BaseModel):
    isValid: bool
    errors: List[ValidationError] = Field(default_factory=list)

    @property
    def warnings(self) -> List[ValidationError]:
        return [e for e in self.errors if e.severity == "warning"]
