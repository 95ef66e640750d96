from typing import Dict, Any, List, Optional, Callable
from pydantic import BaseModel, ConfigDict, Field, model_validator
from enum import Enum
import random
import string
import time


class ParameterType(str, Enum):
    """Declared type of a tool parameter"""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ToolCategory(str, Enum):
    """Catalog grouping used for listing tools"""
    CONTENT = "content"
    DATA = "data"
    ACTION = "action"
    MEMORY = "memory"
    UTILITY = "utility"


class ToolParameter(BaseModel):
    """Parameter declaration of a tool"""
    name: str
    type: ParameterType
    description: str = ""
    required: bool = False
    enum: Optional[List[Any]] = None
    default: Optional[Any] = None


class ToolResult(BaseModel):
    """Outcome of a tool dispatch"""
    success: bool
    data: Optional[Any] = None
    display_text: Optional[str] = None
    error: Optional[str] = None
    suggestions: Optional[List[str]] = None

    @model_validator(mode="after")
    def check_outcome(self) -> "ToolResult":
        if self.success and self.error is not None:
            raise ValueError("a successful result cannot carry an error")
        return self


class Tool(BaseModel):
    """A named capability the agent can invoke.

    ``execute`` receives the parameter map (defaults already merged) and the
    ``AgentContext`` and returns a ``ToolResult`` or an awaitable of one.
    Capabilities should honour task cancellation: dispatch stops waiting on
    timeout but does not cancel the capability.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    category: ToolCategory = ToolCategory.UTILITY
    parameters: List[ToolParameter] = Field(default_factory=list)
    requires_page_context: bool = False
    execute: Callable[..., Any]


class ToolCall(BaseModel):
    """A single requested dispatch"""
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    call_id: str


class ValidationResult(BaseModel):
    """Aggregated parameter validation outcome"""
    valid: bool
    errors: List[str] = Field(default_factory=list)


class ParameterDescription(BaseModel):
    name: str
    type: ParameterType
    description: str
    required: bool


class ToolDescription(BaseModel):
    """Catalog entry rendered for the language backend"""
    name: str
    description: str
    parameters: List[ParameterDescription]


_ID_ALPHABET = string.ascii_lowercase + string.digits


def create_tool_call_id() -> str:
    """Monotonic-ish call id: epoch milliseconds plus a random suffix"""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"tc_{int(time.time() * 1000)}_{suffix}"


def create_tool_call(tool: str, parameters: Dict[str, Any]) -> ToolCall:
    return ToolCall(tool=tool, parameters=parameters, call_id=create_tool_call_id())


def success_result(data: Any, display_text: Optional[str] = None) -> ToolResult:
    return ToolResult(success=True, data=data, display_text=display_text)


def error_result(error: str, suggestions: Optional[List[str]] = None) -> ToolResult:
    return ToolResult(success=False, error=error, suggestions=suggestions)
