"""Structured tool result returned to the agent loop."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, model_validator


class ToolResult(BaseModel):
    """
    Result of one tool call.

    Tool failures never raise into the agent loop; they come back as a
    result with `error=True` and descriptive text in `output`.

    Examples:
        ToolResult(output="Files: \\n[DIR] docs/\\n")
        ToolResult.failure("Error: Directory does not exist: missing")
        ToolResult(output="Found 2 file(s)", data={"matches": [...]})
    """

    output: str
    error: bool = False
    data: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def validate_error_output(self):
        """An error result must say what went wrong."""
        if self.error and not self.output.strip():
            raise ValueError("An error result must carry a non-empty output message.")
        return self

    @classmethod
    def success(cls, output: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(output=output, data=data)

    @classmethod
    def failure(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(output=message, error=True, data=data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary, dropping an empty data payload."""
        result = self.model_dump()
        if result.get("data") is None:
            result.pop("data", None)
        return result

    def __str__(self) -> str:
        return self.output
