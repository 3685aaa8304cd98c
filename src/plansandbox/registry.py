"""
Per-plan registry of parallel sub-task results.

Parallel tool executions of one plan register an entry before running
and store their result when done; the plan reads a snapshot of all
entries once the batch finishes.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    """
    One sub-task of a parallel batch.

    Attributes:
        entry_id: Id of the sub-task, unique within the plan
        tool_name: Tool the sub-task runs
        input: Tool arguments
        result: Tool output, None until the sub-task finishes
    """

    entry_id: str
    tool_name: str
    input: Dict[str, Any]
    result: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.result is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "tool_name": self.tool_name,
            "input": self.input,
            "result": self.result,
        }


class ResultRegistry:
    """Thread-safe map of plan id to its sub-task entries."""

    def __init__(self):
        self._plans: Dict[str, Dict[str, RegistryEntry]] = {}
        self._lock = threading.Lock()

    def register(self, plan_id: str, entry_id: str, tool_name: str, input: Dict[str, Any]) -> RegistryEntry:
        """
        Add a sub-task entry, replacing any entry with the same id.

        Returns:
            The new entry
        """
        entry = RegistryEntry(entry_id=entry_id, tool_name=tool_name, input=dict(input))
        with self._lock:
            self._plans.setdefault(plan_id, {})[entry_id] = entry
        logger.debug(f"Registered {tool_name} entry {entry_id} for plan {plan_id}")
        return entry

    def set_result(self, plan_id: str, entry_id: str, result: str) -> None:
        """
        Store the result of a registered entry.

        Raises:
            KeyError: If the entry was never registered
        """
        with self._lock:
            entries = self._plans.get(plan_id)
            if entries is None or entry_id not in entries:
                raise KeyError(f"No entry '{entry_id}' registered for plan '{plan_id}'")
            entries[entry_id].result = result

    def entries(self, plan_id: str) -> List[RegistryEntry]:
        """Copies of a plan's entries in registration order."""
        with self._lock:
            return [replace(entry, input=dict(entry.input)) for entry in self._plans.get(plan_id, {}).values()]

    def clear(self, plan_id: str) -> int:
        """
        Drop every entry of a plan.

        Returns:
            Number of entries removed
        """
        with self._lock:
            removed = self._plans.pop(plan_id, {})
        if removed:
            logger.info(f"Cleared {len(removed)} registry entries for plan {plan_id}")
        return len(removed)

    def __contains__(self, plan_id: str) -> bool:
        with self._lock:
            return plan_id in self._plans
