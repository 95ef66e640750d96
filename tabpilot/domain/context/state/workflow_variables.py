from typing import Dict, Any, List, Optional, Union
from pydantic import BaseModel, Field
from enum import Enum
import json
import re
import structlog

from .condition_parser import ConditionSyntaxError, evaluate_expression

logger = structlog.get_logger(__name__)

VariableValue = Union[str, int, float, bool, List[Any], Dict[str, Any]]

_PLACEHOLDER_RE = re.compile(r"\{\{(.+?)\}\}")
_EXACT_PLACEHOLDER_RE = re.compile(r"^\{\{([^{}]+)\}\}$")
# Anything outside this set fails the condition before parsing
_UNSAFE_CONDITION_RE = re.compile(r"[^a-zA-Z0-9\s<>=!&|\"'\-._\[\]]")
# Substituted strings may not carry quotes, escapes or markup brackets
_UNSAFE_VALUE_RE = re.compile(r"[\"'`\\<>]")


class VariableSource(str, Enum):
    USER = "user"
    EXTRACTED = "extracted"
    COMPUTED = "computed"


class WorkflowVariable(BaseModel):
    """A named value threaded through a tool chain"""
    name: str
    value: Any
    type: str = Field(description="string, number, boolean, array or object")
    source: VariableSource = VariableSource.USER


class LoopFrame(BaseModel):
    variable: str
    index: int = 0
    items: List[Any] = Field(default_factory=list)


class WorkflowContext(BaseModel):
    """Variable map plus the LIFO stack of active loops"""
    variables: Dict[str, WorkflowVariable] = Field(default_factory=dict)
    loop_stack: List[LoopFrame] = Field(default_factory=list)


def infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def render_value(value: Any) -> str:
    """Text form of a value inside an interpolated string"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def render_literal(value: Any) -> str:
    """Literal form of a value inside a condition"""
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False)
    return render_value(value)


class WorkflowVariables:
    """Variable store, interpolation, conditions and loop state for one workflow run.

    The loop stack is plain mutable state: two workflows running at the same
    time need two instances.
    """

    def __init__(self):
        self.context = WorkflowContext()

    # Variable map

    def set(self, name: str, value: VariableValue, source: VariableSource = VariableSource.USER):
        self.context.variables[name] = WorkflowVariable(
            name=name,
            value=value,
            type=infer_type(value),
            source=source
        )

    def get(self, name: str) -> Optional[VariableValue]:
        variable = self.context.variables.get(name)
        return variable.value if variable else None

    def get_variable(self, name: str) -> Optional[WorkflowVariable]:
        return self.context.variables.get(name)

    def get_all(self) -> Dict[str, VariableValue]:
        return {name: v.value for name, v in self.context.variables.items()}

    def delete(self, name: str) -> bool:
        return self.context.variables.pop(name, None) is not None

    def clear(self):
        self.context.variables.clear()
        self.context.loop_stack = []

    def set_from_extracted(self, data: Dict[str, Any]):
        """Import structured page data as variables"""
        for key, value in data.items():
            self.set(key, value, source=VariableSource.EXTRACTED)

    def compute(self, name: str, expression: str) -> str:
        value = self.interpolate(expression)
        self.set(name, value, source=VariableSource.COMPUTED)
        return value

    def export(self) -> Dict[str, VariableValue]:
        """Flat name -> value map; loop state is run-scoped and never exported"""
        return self.get_all()

    def import_variables(self, data: Dict[str, VariableValue]):
        for key, value in data.items():
            self.set(key, value)

    # Interpolation & conditions

    def lookup(self, path: str) -> Any:
        """Resolve a dotted path; undefined anywhere yields ''"""

        parts = path.strip().split(".")
        head = parts[0]

        found = False
        current: Any = None
        for frame in reversed(self.context.loop_stack):
            if frame.variable == head:
                current = frame.items[frame.index] if 0 <= frame.index < len(frame.items) else None
                found = True
                break
        else:
            if head == "loop" and len(parts) > 1 and parts[1] == "index" and self.context.loop_stack:
                return self.context.loop_stack[-1].index

        if not found:
            current = self.get(head)

        if current is None:
            return ""

        for part in parts[1:]:
            current = _step_into(current, part)
            if current is None:
                return ""

        return current

    def interpolate(self, template: str) -> str:
        return _PLACEHOLDER_RE.sub(lambda m: render_value(self.lookup(m.group(1))), template)

    def resolve(self, value: Any) -> Any:
        """Interpolate a parameter value, keeping raw types for bare placeholders"""
        if isinstance(value, str):
            exact = _EXACT_PLACEHOLDER_RE.match(value)
            if exact:
                return self.lookup(exact.group(1))
            return self.interpolate(value)
        if isinstance(value, list):
            return [self.resolve(v) for v in value]
        if isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        return value

    def evaluate(self, condition: str) -> bool:
        """Evaluate a branch condition; anything unsafe or malformed is False"""

        unsafe_values = []

        def substitute(match):
            value = self.lookup(match.group(1))
            if isinstance(value, str) and _UNSAFE_VALUE_RE.search(value):
                unsafe_values.append(match.group(1))
            return render_literal(value)

        expression = _PLACEHOLDER_RE.sub(substitute, condition)

        if unsafe_values or _UNSAFE_CONDITION_RE.search(expression):
            logger.warning("Unsafe condition rejected", condition=condition)
            return False

        try:
            return evaluate_expression(expression)
        except ConditionSyntaxError as e:
            logger.warning("Condition evaluation failed", condition=condition, error=str(e))
            return False

    # Loops

    def enter_loop(self, variable: str, items: List[Any]):
        self.context.loop_stack.append(LoopFrame(variable=variable, index=0, items=list(items)))

    def next_loop_item(self) -> bool:
        """Advance the innermost loop; False once it is exhausted"""
        if not self.context.loop_stack:
            return False
        frame = self.context.loop_stack[-1]
        frame.index += 1
        return frame.index < len(frame.items)

    def exit_loop(self):
        if self.context.loop_stack:
            self.context.loop_stack.pop()

    def get_loop_index(self) -> int:
        if not self.context.loop_stack:
            return -1
        return self.context.loop_stack[-1].index

    def get_loop_item(self) -> Optional[Any]:
        if not self.context.loop_stack:
            return None
        frame = self.context.loop_stack[-1]
        if frame.index < len(frame.items):
            return frame.items[frame.index]
        return None


def _step_into(current: Any, part: str) -> Any:
    if isinstance(current, dict):
        return current.get(part)
    if isinstance(current, (list, tuple)):
        if part.isdigit() and int(part) < len(current):
            return current[int(part)]
        if part == "length":
            return len(current)
        return None
    if isinstance(current, BaseModel):
        return getattr(current, part, None)
    return None
