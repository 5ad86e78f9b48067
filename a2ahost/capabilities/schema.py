"""Capability schema — what a capability is called and what arguments it takes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CapabilityParameter(BaseModel):
    name: str
    type: str = "string"
    description: str
    required: bool = True

    def to_property(self) -> dict[str, str]:
        return {"type": self.type, "description": self.description}


class CapabilitySchema(BaseModel):
    """Name, description and arguments of something the planner may call."""

    name: str
    description: str
    parameters: list[CapabilityParameter] = Field(default_factory=list)

    @property
    def input_schema(self) -> dict[str, Any]:
        """Arguments as a JSON-Schema object."""
        return {
            "type": "object",
            "properties": {p.name: p.to_property() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_brief(self) -> dict[str, Any]:
        """Shape listed in the planning prompt."""
        return {"description": self.description, "parameters": self.input_schema}

    def to_tool(self) -> dict[str, Any]:
        """Tool declaration offered to the oracle."""
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}
