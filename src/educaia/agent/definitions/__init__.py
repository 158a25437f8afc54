"""Agent definitions, the registry holding them and the factory building them."""

from .educa_ia import EDUCA_IA_NAME, educa_ia_config
from .factory import AgentConfig, AgentFactory
from .registry import AgentRegistry

__all__ = [
    "AgentConfig",
    "AgentFactory",
    "AgentRegistry",
    "EDUCA_IA_NAME",
    "educa_ia_config",
]
