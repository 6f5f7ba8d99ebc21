"""
MCP Interface Layer using fastmcp for administering the agent system.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from agentmind.models.errors import AgentMindError
from agentmind.services.admin import AdminService
from agentmind.services.system import build_system
from agentmind.utils.bedrock_llm import BedrockLLM
from agentmind.utils.config import config
from agentmind.utils.health_check import check_health
from agentmind.utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Agent Mind')
admin_service = AdminService(build_system(config, generator=BedrockLLM(config.bedrock_llm)))


@mcp.tool()
def health() -> Dict[str, bool]:
    """Report whether each component is healthy.

    Returns:
        Mapping of memory, knowledge, personality, workflows and integration to booleans
    """
    return admin_service.health()


@mcp.tool()
def stats() -> Dict[str, Any]:
    """Live totals: memories, knowledge nodes and average decision success rate."""
    return admin_service.stats()


@mcp.tool()
def list_memories(participant_id: str, kind: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    """List a participant's most recent memories.

    Args:
        participant_id: Participant ID
        kind: Only memories of this kind (conversation, decision, creation, collaboration, training)
        limit: Maximum number of memories to return (default: 50)

    Returns:
        Memory records, newest first

    Raises:
        Exception: If the listing fails
    """
    try:
        if not participant_id or not participant_id.strip():
            raise ValueError('Participant ID is required')
        result = admin_service.list_memories(participant_id, kind, limit)
        logger.debug(f'MCP listed {len(result)} memories for {participant_id}')
        return result

    except AgentMindError as e:
        logger.error(f'Agent system error in MCP list_memories: {e}')
        raise Exception(f'Memory listing failed: {e}')


@mcp.tool()
def list_traits(participant_id: str) -> Dict[str, Any]:
    """Current traits, base traits and evolution insights of a participant."""
    try:
        return admin_service.list_traits(participant_id)
    except AgentMindError as e:
        logger.error(f'Agent system error in MCP list_traits: {e}')
        raise Exception(f'Trait listing failed: {e}')


@mcp.tool()
def run_workflow(name: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Run a named workflow.

    Args:
        name: Workflow name, e.g. market_analysis, creative_collective, daily_standup
        params: Keyword arguments for the workflow

    Returns:
        The workflow result
    """
    try:
        return admin_service.run_workflow(name, params)
    except AgentMindError as e:
        logger.error(f'Agent system error in MCP run_workflow: {e}')
        raise Exception(f'Workflow {name} failed: {e}')


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    if not check_health(admin_service.system):
        logger.warning('Starting MCP server with unhealthy components')
    admin_service.system.memory.start_cleanup()
    mcp.run(transport=transport, host=host, port=port)
