"""
Administrative surface: health, statistics, listings and workflow triggers.
"""

from typing import Any, Dict, List, Optional

from ..models.errors import NotFoundError
from ..utils.health_check import get_health_status
from ..utils.logging_config import get_logger
from .system import AgentSystem

logger = get_logger(__name__)


class AdminService:
    """Read-mostly view over a running AgentSystem."""

    def __init__(self, system: AgentSystem):
        self.system = system

    def health(self) -> Dict[str, bool]:
        """Component health flags: memory, knowledge, personality, workflows, integration."""
        status = get_health_status(self.system)
        return {component: bool(details.get('healthy', False)) for component, details in status.items()}

    def stats(self) -> Dict[str, Any]:
        """Live counters computed from the substrate.

        avg_success_rate averages the decision success rate of participants
        that have recorded at least one decision.
        """
        memory = self.system.memory
        total = 0
        rates = []
        for participant_id in memory.participants():
            summary = memory.summarize(participant_id)
            total += summary.total_count
            if summary.counts_by_kind.get('decision'):
                rates.append(summary.success_rate)

        return {
            'total_memories': total,
            'knowledge_node_count': self.system.knowledge.node_count(),
            'avg_success_rate': sum(rates) / len(rates) if rates else 0.0,
            'source': 'live'
        }

    def list_memories(self, participant_id: str, kind: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent memories of a participant, newest first."""
        self._require_participant(participant_id)
        records = self.system.memory.query(participant_id, kind=kind, limit=limit)
        return [r.to_dict() for r in reversed(records)]

    def list_traits(self, participant_id: str) -> Dict[str, Any]:
        self._require_participant(participant_id)
        insights = self.system.personality.get_insights(participant_id)
        profile = self.system.personality.get_profile(participant_id)
        insights['base'] = profile.base_traits.to_dict()
        insights['adaptations'] = [a.to_dict() for a in profile.adaptations]
        return insights

    def run_workflow(self, name: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Trigger a named workflow.

        Raises:
            NotFoundError: If no workflow has that name
        """
        logger.info(f'Admin trigger for workflow {name}')
        return self.system.workflows.run(name, params).to_dict()

    def _require_participant(self, participant_id: str) -> None:
        if participant_id not in self.system.registry:
            raise NotFoundError(f'Unknown participant: {participant_id}')
