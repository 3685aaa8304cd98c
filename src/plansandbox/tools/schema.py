import inspect
import logging
import re
from typing import Any, Callable, Dict, List, Literal, Union, get_args, get_origin, get_type_hints

logger = logging.getLogger(__name__)

_SECTION_RE = re.compile(r"^(Args|Arguments|Parameters|Returns|Yields|Raises|Example|Examples):$", re.IGNORECASE)
_PARAM_RE = re.compile(r"^(\w+)\s*(?:\(([^)]*)\))?:\s*(.*)$")


def _parse_docstring(docstring: str) -> Dict[str, Any]:
    """
    Parses a Google-style docstring into a description and parameter descriptions.

    E.g.:
    Args:
        pattern (str): Glob pattern to match.
                       Can span multiple lines.
    """
    if not docstring:
        return {"description": "", "params": {}}

    lines = inspect.cleandoc(docstring).splitlines()
    description_lines: List[str] = []
    params: Dict[str, str] = {}

    section = None
    current = None
    for line in lines:
        stripped = line.strip()
        header = _SECTION_RE.match(stripped)
        if header:
            section = header.group(1).lower()
            current = None
            continue

        if section is None:
            if not stripped and description_lines:
                # First paragraph only
                section = "rest"
                continue
            if stripped:
                description_lines.append(stripped)
        elif section in ("args", "arguments", "parameters"):
            match = _PARAM_RE.match(stripped)
            indented_continuation = current and line.startswith("    " * 2)
            if match and not indented_continuation:
                current = match.group(1)
                params[current] = match.group(3).strip()
            elif current and stripped:
                params[current] = f"{params[current]} {stripped}".strip()

    return {"description": " ".join(description_lines), "params": params}


def _map_type_to_json_schema(py_type: Any) -> Dict[str, Any]:
    """Maps Python types to JSON schema type definitions."""
    if py_type is str:
        return {"type": "string"}
    if py_type is bool:
        return {"type": "boolean"}
    if py_type is int:
        return {"type": "integer"}
    if py_type is float:
        return {"type": "number"}

    origin = get_origin(py_type)
    if py_type is list or origin is list:
        args = get_args(py_type)
        item_schema = _map_type_to_json_schema(args[0]) if args else {"type": "string"}
        return {"type": "array", "items": item_schema}
    if py_type is dict or origin is dict:
        return {"type": "object", "additionalProperties": True}
    if origin is Literal:
        values = list(get_args(py_type))
        schema = _map_type_to_json_schema(type(values[0])) if values else {"type": "string"}
        schema["enum"] = values
        return schema
    if origin is Union:
        non_none = [t for t in get_args(py_type) if t is not type(None)]
        if len(non_none) == 1:
            return _map_type_to_json_schema(non_none[0])
        logger.warning(f"Complex Union type {py_type} encountered. Using schema of first type.")
        if non_none:
            return _map_type_to_json_schema(non_none[0])

    logger.warning(f"Unsupported type {py_type} for JSON schema mapping. Defaulting to 'string'.")
    return {"type": "string"}


def generate_openai_tool_schema(func: Callable, func_name: str, description: str = "") -> Dict[str, Any]:
    """
    Generates an OpenAI-compatible tool schema from a function signature and docstring.

    Args:
        func: The function (or bound method) to describe.
        func_name: The name to use for the tool in the schema.
        description: Description override; the docstring summary is used if empty.

    Returns:
        A dictionary representing the tool schema.
    """
    sig = inspect.signature(func)
    try:
        type_hints = get_type_hints(func)
    except (NameError, TypeError) as e:
        logger.error(f"Could not get type hints for function {func_name}: {e}. Using annotations directly.")
        type_hints = {name: param.annotation for name, param in sig.parameters.items()}

    docstring_info = _parse_docstring(inspect.getdoc(func) or "")

    properties: Dict[str, Any] = {}
    required: List[str] = []
    for name, param in sig.parameters.items():
        if name in ("self", "cls") or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue

        hint = type_hints.get(name, param.annotation)
        if hint is inspect.Parameter.empty:
            logger.warning(f"No type hint found for parameter '{name}' in function '{func_name}'. Defaulting to 'string'.")
            hint = str

        schema = _map_type_to_json_schema(hint)
        if name in docstring_info["params"]:
            schema["description"] = docstring_info["params"][name]
        properties[name] = schema

        if param.default is inspect.Parameter.empty:
            required.append(name)

    return {
        "type": "function",
        "function": {
            "name": func_name,
            "description": description or docstring_info["description"],
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }
