"""
Tool Catalog Assembly
=====================

Builds a ToolRegistry from whichever platform collaborators a deployment
provides. A catalog whose collaborator is missing is left out entirely, so the
model never sees tools it cannot call.
"""

import logging
from typing import Optional

from adforge.memory import MemoryService
from adforge.platforms import PlatformClients
from adforge.tools.data_tools import create_data_tools
from adforge.tools.facebook_tools import create_facebook_tools
from adforge.tools.material_tools import create_material_tools
from adforge.tools.memory_tools import create_memory_tools
from adforge.tools.registry import ToolRegistry
from adforge.tools.tiktok_tools import create_tiktok_tools

logger = logging.getLogger(__name__)


def build_registry(
    clients: PlatformClients,
    memory: Optional[MemoryService] = None,
    tool_timeout: Optional[float] = None,
) -> ToolRegistry:
    """
    Register every available catalog.

    Args:
        clients: Platform collaborators (any may be None)
        memory: Memory service for the memory tools
        tool_timeout: Per-call handler bound in seconds

    Returns:
        A populated ToolRegistry
    """
    registry = ToolRegistry(tool_timeout=tool_timeout)

    if clients.facebook is not None:
        registry.register_all(create_facebook_tools(clients.facebook))
    if clients.tiktok is not None:
        registry.register_all(create_tiktok_tools(clients.tiktok))
    if clients.reporting is not None:
        registry.register_all(create_data_tools(clients.reporting))
    if clients.materials is not None:
        registry.register_all(create_material_tools(clients.materials))
    if memory is not None:
        registry.register_all(create_memory_tools(memory.long_term))

    logger.debug("Tool registry built with %d tools: %s", len(registry), ", ".join(registry.names()))
    return registry
