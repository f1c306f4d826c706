from __future__ import annotations

from dataclasses import dataclass

from .base import ActionExecutor


@dataclass(frozen=True)
class ActionDefinition:
    name: str
    description: str
    schema: dict[str, object]
    executor: ActionExecutor

    @property
    def required(self) -> list[str]:
        required = self.schema.get("required")
        if not isinstance(required, list):
            return []
        return [field for field in required if isinstance(field, str)]

    def as_tool(self) -> dict[str, object]:
        """OpenAI function-calling declaration for this action."""
        properties = self.schema.get("properties")
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties if isinstance(properties, dict) else {},
                    "required": self.required,
                },
            },
        }


class ActionCatalog:
    def __init__(self) -> None:
        self._actions: dict[str, ActionDefinition] = {}

    def register(self, executor: ActionExecutor) -> None:
        if executor.name in self._actions:
            raise ValueError(f"Action '{executor.name}' is already registered.")
        self._actions[executor.name] = ActionDefinition(
            name=executor.name,
            description=executor.description,
            schema=executor.schema,
            executor=executor,
        )

    def get(self, name: str) -> ActionDefinition | None:
        return self._actions.get(name)

    def names(self) -> list[str]:
        return sorted(self._actions.keys())

    def definitions(self) -> list[ActionDefinition]:
        return [self._actions[name] for name in self.names()]

    def as_tools(self) -> list[dict[str, object]]:
        return [definition.as_tool() for definition in self.definitions()]
