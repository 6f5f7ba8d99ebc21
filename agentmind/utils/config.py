"""
Configuration management for the generation service and application settings.
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    read_timeout: float


@dataclass
class MemoryConfig:
    """Configuration for the per-participant memory store."""
    storage_dir: str
    retention_days: int
    max_records_per_participant: int
    max_pattern_examples: int
    cleanup_interval_hours: int


@dataclass
class KnowledgeConfig:
    """Configuration for the shared knowledge graph."""
    verification_weight: float
    auto_connect_limit: int
    recency_half_life_hours: float
    expert_min_confidence: float
    expert_limit: int
    shared_insight_confidence: float
    snapshot_path: str


@dataclass
class PersonalityConfig:
    """Configuration for the personality evolution engine."""
    evolution_rate: float
    stability_factor: float
    history_limit: int
    adaptation_limit: int
    interaction_influence: float
    snapshot_path: str


@dataclass
class CoordinatorConfig:
    """Configuration for dialogue orchestration."""
    synthesizer: str
    max_rounds: int
    turn_timeout: float
    retry_attempts: int
    retry_delay: float
    max_workers: int
    excerpt_chars: int


@dataclass
class RoleConfig:
    """Participant roles used by the fixed auto-connect rules and workflows."""
    creator: str
    curator: str
    market_analysts: List[str] = field(default_factory=list)


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    memory: MemoryConfig
    knowledge: KnowledgeConfig
    personality: PersonalityConfig
    coordinator: CoordinatorConfig
    roles: RoleConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')
    data_dir = os.getenv('AGENTMIND_DATA_DIR', './agent-data')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '2048')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.7')),
                                          read_timeout=float(os.getenv('BEDROCK_LLM_READ_TIMEOUT', '120')))

    # Memory configuration
    memory_config = MemoryConfig(storage_dir=os.getenv('MEMORY_STORAGE_DIR', os.path.join(data_dir, 'memories')),
                                 retention_days=int(os.getenv('MEMORY_RETENTION_DAYS', '90')),
                                 max_records_per_participant=int(os.getenv('MEMORY_MAX_RECORDS', '10000')),
                                 max_pattern_examples=int(os.getenv('MEMORY_MAX_PATTERN_EXAMPLES', '10')),
                                 cleanup_interval_hours=int(os.getenv('MEMORY_CLEANUP_INTERVAL_HOURS', '24')))

    # Knowledge graph configuration
    knowledge_config = KnowledgeConfig(verification_weight=float(os.getenv('KNOWLEDGE_VERIFICATION_WEIGHT', '0.1')),
                                       auto_connect_limit=int(os.getenv('KNOWLEDGE_AUTO_CONNECT_LIMIT', '5')),
                                       recency_half_life_hours=float(os.getenv('KNOWLEDGE_RECENCY_HALF_LIFE_HOURS', '168')),
                                       expert_min_confidence=float(os.getenv('KNOWLEDGE_EXPERT_MIN_CONFIDENCE', '0.7')),
                                       expert_limit=int(os.getenv('KNOWLEDGE_EXPERT_LIMIT', '5')),
                                       shared_insight_confidence=float(os.getenv('KNOWLEDGE_SHARED_INSIGHT_CONFIDENCE', '0.8')),
                                       snapshot_path=os.getenv('KNOWLEDGE_SNAPSHOT_PATH',
                                                               os.path.join(data_dir, 'knowledge-graph.json')))

    # Personality configuration
    personality_config = PersonalityConfig(evolution_rate=float(os.getenv('PERSONALITY_EVOLUTION_RATE', '0.05')),
                                           stability_factor=float(os.getenv('PERSONALITY_STABILITY_FACTOR', '0.8')),
                                           history_limit=int(os.getenv('PERSONALITY_HISTORY_LIMIT', '100')),
                                           adaptation_limit=int(os.getenv('PERSONALITY_ADAPTATION_LIMIT', '20')),
                                           interaction_influence=float(os.getenv('PERSONALITY_INTERACTION_INFLUENCE', '0.02')),
                                           snapshot_path=os.getenv('PERSONALITY_SNAPSHOT_PATH',
                                                                   os.path.join(data_dir, 'personalities.json')))

    # Coordinator configuration
    coordinator_config = CoordinatorConfig(synthesizer=os.getenv('COORDINATOR_SYNTHESIZER', 'citizen'),
                                           max_rounds=int(os.getenv('COORDINATOR_MAX_ROUNDS', '3')),
                                           turn_timeout=float(os.getenv('COORDINATOR_TURN_TIMEOUT', '60')),
                                           retry_attempts=int(os.getenv('COORDINATOR_RETRY_ATTEMPTS', '3')),
                                           retry_delay=float(os.getenv('COORDINATOR_RETRY_DELAY', '1.0')),
                                           max_workers=int(os.getenv('COORDINATOR_MAX_WORKERS', '4')),
                                           excerpt_chars=int(os.getenv('COORDINATOR_EXCERPT_CHARS', '200')))

    # Role configuration
    analysts = os.getenv('ROLE_MARKET_ANALYSTS', 'miyomi,bertha')
    role_config = RoleConfig(creator=os.getenv('ROLE_CREATOR', 'abraham'),
                             curator=os.getenv('ROLE_CURATOR', 'sue'),
                             market_analysts=[a.strip() for a in analysts.split(',') if a.strip()])

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     memory=memory_config,
                     knowledge=knowledge_config,
                     personality=personality_config,
                     coordinator=coordinator_config,
                     roles=role_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
