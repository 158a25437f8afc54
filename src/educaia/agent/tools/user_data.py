"""Lookup of the caller's own profile, school and AI preferences."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from ..domain.entities import ToolContext
from ..domain.ports import IUserDirectory
from .base import BaseTool, ToolArgs


class GetUserDataArgs(ToolArgs):
    data_type: Literal["profile", "school", "preferences", "all"] = Field(
        ...,
        alias="dataType",
        description=(
            "Tipo de dado a buscar: profile (perfil), school (escola), "
            "preferences (preferências de IA), all (todos)"
        ),
    )


class GetUserDataTool(BaseTool):
    name = "getUserData"
    description = (
        "Busca dados do próprio usuário logado: preferências, escola vinculada ou "
        "dados do perfil. Não requer aprovação pois são dados do próprio usuário."
    )
    args_model = GetUserDataArgs
    error_message = "Não foi possível obter os dados do usuário."
    timeout_seconds = 10

    def __init__(self, directory: IUserDirectory):
        self.directory = directory

    async def execute(self, args: GetUserDataArgs, context: ToolContext) -> dict[str, Any]:
        wanted = args.data_type
        data: dict[str, Any] = {}

        if wanted in ("profile", "all"):
            data["profile"] = await self.directory.get_profile(context)
        if wanted in ("school", "all"):
            data["school"] = (
                await self.directory.get_school(context) if context.school_id else None
            )
        if wanted in ("preferences", "all"):
            data["preferences"] = await self.directory.get_preferences(context)

        return {
            "success": True,
            "message": "Dados do usuário obtidos com sucesso.",
            "data": data,
        }
