# ============================================
# PLAN TOOL - Todo list managed by the model
# ============================================
"""
update_plan lets the model publish and revise its own todo list. Every
successful call replaces the plan; the pipeline forwards the new items to
the consumer as a TodoUpdate event.
"""

from typing import Any

from agentloop.infrastructure.tools.tool import Tool

PLAN_STATUSES = ("pending", "in_progress", "completed")

_CHECKBOX = {"pending": "[ ]", "in_progress": "[~]", "completed": "[x]"}


class UpdatePlanTool(Tool):
    """
    Tool for model-controlled plan management.

    The state is a list of {"step": str, "status": str} items and can be
    exported and restored through get_state() / set_state().
    """

    def __init__(self, initial_state: list[dict[str, str]] | None = None):
        super().__init__()
        self._todos: list[dict[str, str]] = list(initial_state or [])

    @property
    def name(self) -> str:
        return "update_plan"

    @property
    def description(self) -> str:
        return (
            "Publish or update your step-by-step plan. Pass the complete list of "
            "steps each time; each step has a status of 'pending', 'in_progress' "
            "or 'completed'. At most one step may be in_progress."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "explanation": {
                    "type": "string",
                    "description": "Optional note on why the plan changed",
                },
                "plan": {
                    "type": "array",
                    "description": "The full list of plan steps",
                    "items": {
                        "type": "object",
                        "properties": {
                            "step": {"type": "string"},
                            "status": {"type": "string", "enum": list(PLAN_STATUSES)},
                        },
                        "required": ["step", "status"],
                    },
                },
            },
            "required": ["plan"],
        }

    def get_state(self) -> list[dict[str, str]]:
        return [dict(item) for item in self._todos]

    def set_state(self, state: list[dict[str, str]] | None) -> None:
        self._todos = [dict(item) for item in state or []]

    async def execute(
        self, plan: list[dict[str, Any]], explanation: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        """
        Replace the current plan.

        Args:
            plan: Items with "step" and "status"
            explanation: Optional reason for the change

        Returns:
            Success dict with the formatted plan and the items as metadata,
            or an error dict when an item is malformed
        """
        todos: list[dict[str, str]] = []
        for index, item in enumerate(plan):
            if not isinstance(item, dict) or not str(item.get("step", "")).strip():
                return {"success": False, "error": f"Plan item {index} needs a non-empty 'step'"}
            status = item.get("status", "pending")
            if status not in PLAN_STATUSES:
                return {
                    "success": False,
                    "error": f"Plan item {index} has invalid status '{status}'. Valid: {list(PLAN_STATUSES)}",
                }
            todos.append({"step": str(item["step"]).strip(), "status": status})

        if sum(1 for t in todos if t["status"] == "in_progress") > 1:
            return {"success": False, "error": "At most one step can be in_progress"}

        self._todos = todos
        return {
            "success": True,
            "output": self._format_plan(explanation),
            "metadata": {"todos": self.get_state()},
        }

    def _format_plan(self, explanation: str | None = None) -> str:
        """Format the plan as a Markdown task list."""
        if not self._todos:
            return "Plan cleared"
        lines = [f"{i}. {_CHECKBOX[t['status']]} {t['step']}" for i, t in enumerate(self._todos)]
        if explanation:
            lines.insert(0, explanation)
        return "\n".join(lines)
