from typing import Dict, Any, List
import jsonschema

from tabpilot.domain.models.tool import Tool, ToolParameter, ParameterType, ValidationResult


def runtime_type_name(value: Any) -> str:
    """Name a runtime value the way parameter declarations do"""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


# Parameter & type/enum validation
class ToolParameterValidator:
    @staticmethod
    def build_schema(tool: Tool) -> Dict[str, Any]:
        """Translate parameter declarations into a JSON schema.

        ``object`` parameters carry no type constraint and so accept any value.
        """
        properties: Dict[str, Any] = {}
        for param in tool.parameters:
            prop: Dict[str, Any] = {}
            if param.type != ParameterType.OBJECT:
                prop["type"] = param.type.value
            if param.enum is not None:
                prop["enum"] = list(param.enum)
            properties[param.name] = prop

        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in tool.parameters if p.required],
        }

    @staticmethod
    def validate_tool_call(tool: Tool, parameters: Dict[str, Any]) -> ValidationResult:
        # None counts as absent
        present = {k: v for k, v in parameters.items() if v is not None}
        schema = ToolParameterValidator.build_schema(tool)
        validator = jsonschema.Draft7Validator(schema)

        found: Dict[str, Dict[str, str]] = {}
        for error in validator.iter_errors(present):
            if error.validator == "required":
                # message: "'name' is a required property"
                for param in tool.parameters:
                    if param.required and param.name not in present:
                        found.setdefault(param.name, {})["required"] = (
                            f"Missing required parameter: {param.name}"
                        )
                continue

            if not error.path:
                continue
            name = str(error.path[0])
            param = _find_param(tool.parameters, name)
            if param is None:
                continue

            if error.validator == "type":
                found.setdefault(name, {})["type"] = (
                    f'Parameter "{name}" should be {param.type.value}, '
                    f"got {runtime_type_name(error.instance)}"
                )
            elif error.validator == "enum":
                options = ", ".join(str(o) for o in param.enum or [])
                found.setdefault(name, {})["enum"] = (
                    f'Parameter "{name}" must be one of: {options}'
                )

        errors: List[str] = []
        for param in tool.parameters:
            entry = found.get(param.name)
            if not entry:
                continue
            for kind in ("required", "type", "enum"):
                if kind in entry:
                    errors.append(entry[kind])

        return ValidationResult(valid=not errors, errors=errors)


def _find_param(parameters: List[ToolParameter], name: str):
    for param in parameters:
        if param.name == name:
            return param
    return None
