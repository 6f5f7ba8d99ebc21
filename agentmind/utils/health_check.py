"""
Health check utilities for the application.
"""

from typing import Any, Dict

from .logging_config import get_logger

logger = get_logger(__name__)


def check_health(system) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(system)

        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status(system, check_generator: bool = False) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Args:
        system: AgentSystem to inspect
        check_generator: Also call the generation capability's own health check

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    # Memory store
    try:
        participants = system.memory.participants()
        health_status['memory'] = {
            'healthy': system.memory.storage_dir.is_dir(),
            'service': 'Memory Store',
            'storage_dir': str(system.memory.storage_dir),
            'participants': len(participants)
        }
    except Exception as e:
        health_status['memory'] = {'healthy': False, 'service': 'Memory Store', 'error': str(e)}

    # Knowledge graph
    try:
        health_status['knowledge'] = {'healthy': True, 'service': 'Knowledge Graph', 'nodes': system.knowledge.node_count()}
    except Exception as e:
        health_status['knowledge'] = {'healthy': False, 'service': 'Knowledge Graph', 'error': str(e)}

    # Personality engine
    try:
        profiles = system.personality.participants()
        health_status['personality'] = {
            'healthy': set(system.registry.ids()) <= set(profiles),
            'service': 'Personality Engine',
            'profiles': len(profiles)
        }
    except Exception as e:
        health_status['personality'] = {'healthy': False, 'service': 'Personality Engine', 'error': str(e)}

    # Workflows
    try:
        names = system.workflows.names()
        health_status['workflows'] = {'healthy': len(names) > 0, 'service': 'Workflows', 'workflows': names}
    except Exception as e:
        health_status['workflows'] = {'healthy': False, 'service': 'Workflows', 'error': str(e)}

    # Generation capability
    try:
        generator = system.generator
        healthy = generator is not None or any(p.generator is not None for p in system.registry)
        if healthy and check_generator and hasattr(generator, 'health_check'):
            healthy = generator.health_check()
        health_status['integration'] = {
            'healthy': healthy,
            'service': 'Generation capability',
            'model': getattr(generator, 'model_id', None)
        }
    except Exception as e:
        health_status['integration'] = {'healthy': False, 'service': 'Generation capability', 'error': str(e)}

    return health_status
