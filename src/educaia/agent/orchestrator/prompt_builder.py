"""
Prompt Builder for Agent Orchestrator.

Assembles the system prompt from the agent's instructions, the current
user's context and the response mode section.
"""

from __future__ import annotations

import logging

from ..definitions.educa_ia import mode_section, user_context_section
from ..domain.entities import AgentDescriptor, ResponseMode, UserContext

logger = logging.getLogger(__name__)


class PromptBuilder:
    """Builds system prompts.

    Usage:
        prompt_builder = PromptBuilder()

        system_prompt = prompt_builder.build(
            agent=descriptor,
            context=user_context,
            response_mode=ResponseMode.FAST,
        )
    """

    def build(
        self,
        agent: AgentDescriptor,
        context: UserContext,
        response_mode: ResponseMode,
    ) -> str:
        """Build the system prompt.

        Args:
            agent: Agent whose instructions form the base prompt
            context: Caller identity (name, role, school)
            response_mode: fast or detailed

        Returns:
            Instructions followed by the user and mode sections
        """
        sections = [agent.instructions]

        user_section = user_context_section(context)
        if user_section:
            sections.append(user_section)

        sections.append(mode_section(response_mode))
        return "\n\n".join(s for s in sections if s)
