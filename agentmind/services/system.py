"""
Wiring of the shared-cognition services into one system.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..utils.config import AppConfig
from ..utils.logging_config import get_logger
from .coordinator import Coordinator
from .knowledge_graph import KnowledgeGraph
from .memory_store import MemoryStore
from .participants import GenerationCapability, Participant, ParticipantRegistry, default_participants
from .personality_engine import PersonalityEngine
from .workflows import WorkflowService

logger = get_logger(__name__)


@dataclass
class AgentSystem:
    """Every service of one process, sharing a single substrate."""
    config: AppConfig
    registry: ParticipantRegistry
    memory: MemoryStore
    knowledge: KnowledgeGraph
    personality: PersonalityEngine
    coordinator: Coordinator
    workflows: WorkflowService
    generator: Optional[GenerationCapability] = None


def build_system(config: Optional[AppConfig] = None,
                 generator: Optional[GenerationCapability] = None,
                 participants: Optional[Iterable[Participant]] = None) -> AgentSystem:
    """Build the registry, the substrate and the coordinator.

    Args:
        config: AppConfig instance, uses default if None
        generator: Generation capability shared by the default roster
        participants: Roster to register instead of the default one

    Returns:
        The wired AgentSystem
    """
    if config is None:
        from ..utils.config import config as app_config
        config = app_config

    registry = ParticipantRegistry(participants if participants is not None else default_participants(generator))
    memory = MemoryStore(config.memory)
    knowledge = KnowledgeGraph(memory=memory, expertise=registry.expertise_map(), config=config.knowledge, roles=config.roles)
    personality = PersonalityEngine(config.personality, memory=memory)
    for participant in registry:
        personality.register(participant.id, participant.base_traits)

    coordinator = Coordinator(registry, memory, knowledge, personality, config.coordinator)
    workflows = WorkflowService(coordinator, roles=config.roles)

    logger.info(f'Built agent system with {len(registry)} participants')
    return AgentSystem(config=config,
                       registry=registry,
                       memory=memory,
                       knowledge=knowledge,
                       personality=personality,
                       coordinator=coordinator,
                       workflows=workflows,
                       generator=generator)
