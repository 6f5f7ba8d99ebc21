"""
AgentMind package initialization.

Shared-cognition substrate for a roster of autonomous participants: memory
logs, a knowledge graph, personality evolution and dialogue coordination.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()

__version__ = '1.0.0'
