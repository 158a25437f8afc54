"""
Tool base class.

A tool declares a pydantic model for its arguments. The JSON schema sent
to the model and the validation applied before execute() both come from
that single model.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any

from pydantic import BaseModel, ValidationError

from ..domain.entities import ToolContext, ToolDefinition
from ..domain.errors import ToolArgumentError
from ..domain.ports import ITool


class ToolArgs(BaseModel):
    """Base for tool argument models (accepts camelCase aliases)."""

    model_config = {"populate_by_name": True, "extra": "ignore"}


class BaseTool(ITool):
    """Base class for EducaIA tools.

    Subclasses set ``name``, ``description``, ``args_model`` and implement
    execute().

    Usage:
        class EchoArgs(ToolArgs):
            text: str

        class EchoTool(BaseTool):
            name = "echo"
            description = "Repeat the given text"
            args_model = EchoArgs

            async def execute(self, args: EchoArgs, context: ToolContext):
                return {"text": args.text}
    """

    name: str = ""
    description: str = ""
    args_model: type[ToolArgs] = ToolArgs
    requires_approval: bool = False
    timeout_seconds: float = 30
    # Shown to the model and the user when execution fails unexpectedly
    error_message: str = "Não foi possível executar a ferramenta."

    def definition(self) -> ToolDefinition:
        schema = self.args_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=schema,
            requires_approval=self.requires_approval,
            timeout_seconds=self.timeout_seconds,
        )

    def validate(self, arguments: dict[str, Any]) -> ToolArgs:
        try:
            return self.args_model.model_validate(arguments or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolArgumentError(
                f"Invalid arguments for {self.name}: {problems}",
                tool_name=self.name,
            ) from e

    @abstractmethod
    async def execute(self, args: Any, context: ToolContext) -> Any:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
