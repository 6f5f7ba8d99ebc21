"""
Shared pytest fixtures for the agentmind tests.

Provides:
- Temporary storage and per-service configuration
- A scripted generation capability standing in for Bedrock
- A fully wired AgentSystem over temporary storage
"""

import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

import pytest

from agentmind.services.knowledge_graph import KnowledgeGraph
from agentmind.services.memory_store import MemoryStore
from agentmind.services.personality_engine import PersonalityEngine
from agentmind.services.system import build_system
from agentmind.utils.config import (CoordinatorConfig, KnowledgeConfig, MemoryConfig, PersonalityConfig, RoleConfig,
                                    load_config)

# ============================================================================
# Fake generation capability
# ============================================================================


class FakeGenerator:
    """Scripted generation capability.

    The speaker is read back from the system prompt ("You are <Name>, ...").
    responder(speaker, user_prompt, call_index) produces each reply and may
    raise to simulate failures.
    """

    def __init__(self, responder: Optional[Callable[[str, str, int], str]] = None):
        self.calls = []
        self.responder = responder or (lambda speaker, prompt, index: f'{speaker} reply {index}')
        self._lock = threading.Lock()

    def generate(self, system_prompt, history, user_prompt, timeout=None):
        speaker = system_prompt.split(',', 1)[0].replace('You are ', '').strip().lower()
        with self._lock:
            self.calls.append({
                'speaker': speaker,
                'system_prompt': system_prompt,
                'history': list(history),
                'user_prompt': user_prompt
            })
            index = len(self.calls)
        return self.responder(speaker, user_prompt, index)

    def speakers(self):
        return [c['speaker'] for c in self.calls]


# ============================================================================
# Configuration fixtures
# ============================================================================


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / 'agent-data'


@pytest.fixture
def memory_config(data_dir: Path) -> MemoryConfig:
    return MemoryConfig(storage_dir=str(data_dir / 'memories'),
                        retention_days=90,
                        max_records_per_participant=10000,
                        max_pattern_examples=10,
                        cleanup_interval_hours=24)


@pytest.fixture
def knowledge_config(data_dir: Path) -> KnowledgeConfig:
    return KnowledgeConfig(verification_weight=0.1,
                           auto_connect_limit=5,
                           recency_half_life_hours=168,
                           expert_min_confidence=0.7,
                           expert_limit=5,
                           shared_insight_confidence=0.8,
                           snapshot_path=str(data_dir / 'knowledge-graph.json'))


@pytest.fixture
def personality_config(data_dir: Path) -> PersonalityConfig:
    return PersonalityConfig(evolution_rate=0.05,
                             stability_factor=0.8,
                             history_limit=100,
                             adaptation_limit=20,
                             interaction_influence=0.02,
                             snapshot_path=str(data_dir / 'personalities.json'))


@pytest.fixture
def coordinator_config() -> CoordinatorConfig:
    return CoordinatorConfig(synthesizer='citizen',
                             max_rounds=3,
                             turn_timeout=5.0,
                             retry_attempts=3,
                             retry_delay=0.0,
                             max_workers=4,
                             excerpt_chars=200)


@pytest.fixture
def role_config() -> RoleConfig:
    return RoleConfig(creator='abraham', curator='sue', market_analysts=['miyomi', 'bertha'])


@pytest.fixture
def app_config(memory_config, knowledge_config, personality_config, coordinator_config, role_config):
    return replace(load_config(),
                   memory=memory_config,
                   knowledge=knowledge_config,
                   personality=personality_config,
                   coordinator=coordinator_config,
                   roles=role_config)


# ============================================================================
# Service fixtures
# ============================================================================


@pytest.fixture
def memory_store(memory_config) -> MemoryStore:
    return MemoryStore(memory_config)


@pytest.fixture
def knowledge_graph(memory_store, knowledge_config, role_config) -> KnowledgeGraph:
    expertise = {
        'miyomi': ['market', 'contrarian'],
        'bertha': ['investment', 'market'],
        'sue': ['curation', 'exhibition'],
    }
    return KnowledgeGraph(memory=memory_store, expertise=expertise, config=knowledge_config, roles=role_config)


@pytest.fixture
def personality_engine(personality_config) -> PersonalityEngine:
    return PersonalityEngine(personality_config)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def system(app_config, fake_generator):
    """Default roster wired over temporary storage, all speaking through fake_generator."""
    return build_system(app_config, generator=fake_generator)
