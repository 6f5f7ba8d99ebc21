"""
Knowledge Graph: shared, tag-indexed knowledge with symmetric cross-references.
"""

import threading
from copy import deepcopy
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from ..models.core import NODE_TYPES, KnowledgeNode, MemoryMetadata, MemoryRecord
from ..models.errors import ConsistencyError, NotFoundError, PersistenceError, ValidationError
from ..utils.config import KnowledgeConfig, RoleConfig
from ..utils.file_store import read_document, write_document
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import ensure_utc, recency_decay, utc_now
from .memory_store import MemoryStore

logger = get_logger(__name__)


class KnowledgeGraph:
    """Shared knowledge graph addressed by opaque node ids.

    Nodes live in an id -> node map; edges are stored as id lists on both
    endpoints and tags are indexed tag -> id set. A single re-entrant lock
    serializes every read and mutation.
    """

    def __init__(self,
                 memory: Optional[MemoryStore] = None,
                 expertise: Optional[Mapping[str, Iterable[str]]] = None,
                 config: Optional[KnowledgeConfig] = None,
                 roles: Optional[RoleConfig] = None):
        """Initialize the knowledge graph.

        Args:
            memory: Store receiving shared-insight notifications
            expertise: participant id -> expertise keywords
            config: KnowledgeConfig instance, uses default if None
            roles: RoleConfig for the fixed auto-connect rules, uses default if None
        """
        if config is None or roles is None:
            from ..utils.config import config as app_config
            config = config or app_config.knowledge
            roles = roles or app_config.roles
        self.config = config
        self.roles = roles
        self.memory = memory

        self._nodes: Dict[str, KnowledgeNode] = {}
        self._tag_index: Dict[str, Set[str]] = {}
        self._expertise: Dict[str, Set[str]] = {pid: {e.lower() for e in words} for pid, words in (expertise or {}).items()}
        self._lock = threading.RLock()

        logger.info(f'Initialized KnowledgeGraph with {len(self._expertise)} expertise profiles')

    def add_node(self,
                 type: str,
                 content: Any,
                 created_by: str,
                 confidence: float = 0.5,
                 tags: Optional[Iterable[str]] = None,
                 created_at: Optional[datetime] = None) -> str:
        """Add knowledge to the graph and auto-connect it.

        Returns:
            The new node id

        Raises:
            ValidationError: If type, creator or confidence is invalid
        """
        if type not in NODE_TYPES:
            raise ValidationError(f'Unknown knowledge node type: {type}')
        if not created_by:
            raise ValidationError('Knowledge node requires created_by')
        if not 0.0 <= confidence <= 1.0:
            raise ValidationError(f'Knowledge confidence out of range: {confidence}')

        node = KnowledgeNode(id=f'know_{uuid.uuid4().hex}',
                             type=type,
                             content=deepcopy(content),
                             created_by=created_by,
                             created_at=ensure_utc(created_at) if created_at else utc_now(),
                             confidence=float(confidence),
                             tags={str(t) for t in (tags or []) if str(t).strip()})

        with self._lock:
            self._nodes[node.id] = node
            for tag in node.tags:
                self._tag_index.setdefault(tag, set()).add(node.id)
            self.auto_connect(node.id)

        logger.debug(f'Added {type} knowledge {node.id} from {created_by}')
        return node.id

    def auto_connect(self, node_id: str) -> List[str]:
        """Connect a node to related knowledge by shared tags and the fixed role rules.

        Returns:
            Ids of every node connected by this call
        """
        with self._lock:
            node = self._require(node_id)
            overlap: Dict[str, int] = {}
            for tag in node.tags:
                for other_id in self._tag_index.get(tag, ()):
                    if other_id != node_id:
                        overlap[other_id] = overlap.get(other_id, 0) + 1

            ranked = sorted(overlap,
                            key=lambda other_id: (overlap[other_id], self._nodes[other_id].created_at),
                            reverse=True)
            connected = []
            for other_id in ranked[:self.config.auto_connect_limit]:
                self.cross_reference(node_id, other_id, 'tag_similarity')
                connected.append(other_id)

            if node.type == 'artifact' and node.created_by == self.roles.creator:
                curated = self._most_recent(created_by=self.roles.curator, node_type='insight', exclude=node_id)
                if curated:
                    self.cross_reference(node_id, curated.id, 'curation_candidate')
                    connected.append(curated.id)

            partner = self._complementary_analyst(node.created_by)
            if node.type == 'market' and partner:
                related_market = self._most_recent(created_by=partner, node_type='market', exclude=node_id)
                if related_market:
                    self.cross_reference(node_id, related_market.id, 'market_correlation')
                    connected.append(related_market.id)

        return connected

    def query(self,
              type: Optional[str] = None,
              created_by: Optional[str] = None,
              tags: Optional[Iterable[str]] = None,
              min_confidence: Optional[float] = None,
              start: Optional[datetime] = None,
              end: Optional[datetime] = None,
              limit: Optional[int] = None,
              now: Optional[datetime] = None) -> List[KnowledgeNode]:
        """Query knowledge ranked by 0.5 * confidence + 0.5 * recency decay.

        Returns:
            Detached copies of the matching nodes
        """
        now = now or utc_now()
        with self._lock:
            results = [n.copy() for n in self._nodes.values()]

        if type:
            results = [n for n in results if n.type == type]
        if created_by:
            results = [n for n in results if n.created_by == created_by]
        if min_confidence is not None:
            results = [n for n in results if n.confidence >= min_confidence]
        if start:
            start = ensure_utc(start)
            results = [n for n in results if n.created_at >= start]
        if end:
            end = ensure_utc(end)
            results = [n for n in results if n.created_at <= end]
        if tags:
            wanted = set(tags)
            results = [n for n in results if wanted.intersection(n.tags)]

        half_life = self.config.recency_half_life_hours
        results.sort(key=lambda n: (0.5 * n.confidence + 0.5 * recency_decay(n.created_at, half_life, now), n.created_at),
                     reverse=True)

        if limit is not None:
            results = results[:limit]
        return results

    def get_node(self, node_id: str) -> KnowledgeNode:
        """Return a detached copy of a node.

        Raises:
            NotFoundError: If the node does not exist
        """
        with self._lock:
            return self._require(node_id).copy()

    def cross_reference(self, node_id_a: str, node_id_b: str, relationship: str, strict: bool = False) -> bool:
        """Add a labelled symmetric edge; repeating it only refreshes the label.

        Returns:
            True if both nodes exist, False when the call was a no-op

        Raises:
            ConsistencyError: If strict and either node is missing
        """
        if node_id_a == node_id_b:
            raise ValidationError('Cannot cross-reference a node with itself')

        with self._lock:
            node_a = self._nodes.get(node_id_a)
            node_b = self._nodes.get(node_id_b)
            if node_a is None or node_b is None:
                missing = node_id_a if node_a is None else node_id_b
                return self._inconsistent(f'Cannot cross-reference missing node {missing}', strict)

            if node_id_b not in node_a.related_nodes:
                node_a.related_nodes.append(node_id_b)
            if node_id_a not in node_b.related_nodes:
                node_b.related_nodes.append(node_id_a)
            node_a.relations[node_id_b] = relationship
            node_b.relations[node_id_a] = relationship

        logger.debug(f'Cross-referenced {node_id_a} <-> {node_id_b} ({relationship})')
        return True

    def verify(self, node_id: str, verifier_id: str, verifier_confidence: float, strict: bool = False) -> bool:
        """Record a verification and raise the node's confidence.

        Confidence grows by verifier_confidence * verification_weight, capped
        at 1.0. A repeat verifier still raises confidence but is listed once.

        Returns:
            True if the node exists, False when the call was a no-op

        Raises:
            ValidationError: If verifier_id is empty or verifier_confidence is outside [0, 1]
            ConsistencyError: If strict and the node is missing
        """
        if not verifier_id:
            raise ValidationError('Verification requires verifier_id')
        if not 0.0 <= verifier_confidence <= 1.0:
            raise ValidationError(f'Verifier confidence out of range: {verifier_confidence}')

        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return self._inconsistent(f'Cannot verify missing node {node_id}', strict)

            if verifier_id not in node.verified_by:
                node.verified_by.append(verifier_id)
            node.confidence = min(1.0, node.confidence + verifier_confidence * self.config.verification_weight)
            confidence = node.confidence

        logger.debug(f'{verifier_id} verified {node_id}; confidence now {confidence:.3f}')
        return True

    def get_expert_knowledge(self, topic: str, experts: Optional[Iterable[str]] = None) -> List[KnowledgeNode]:
        """High-confidence knowledge on a topic from its experts.

        When experts is omitted they are resolved from the expertise map by
        case-insensitive substring match in either direction.
        """
        topic_experts = list(experts) if experts is not None else self.find_experts(topic)

        results: List[KnowledgeNode] = []
        for expert in topic_experts:
            results.extend(self.query(created_by=expert,
                                      tags=[topic],
                                      min_confidence=self.config.expert_min_confidence,
                                      limit=self.config.expert_limit))
        return results

    def find_experts(self, topic: str) -> List[str]:
        topic_lower = topic.lower().strip()
        if not topic_lower:
            return []
        return [
            pid for pid, expertise in self._expertise.items()
            if any(exp in topic_lower or topic_lower in exp for exp in expertise)
        ]

    def share_insight(self, insight: Any, from_id: str, to_ids: Iterable[str]) -> str:
        """Publish an insight node and notify each recipient through its memory log.

        Returns:
            The insight node id
        """
        recipients = [r for r in dict.fromkeys(to_ids) if r]
        node_id = self.add_node(type='insight',
                                content=insight,
                                created_by=from_id,
                                confidence=self.config.shared_insight_confidence,
                                tags=['shared_insight', *recipients])

        if self.memory is None:
            logger.warning(f'No memory store attached; insight {node_id} shared without notifications')
            return node_id

        for recipient in recipients:
            self.memory.append(MemoryRecord(participant_id=recipient,
                                            kind='collaboration',
                                            content={
                                                'type': 'received_insight',
                                                'from_participant': from_id,
                                                'insight': insight,
                                                'knowledge_node_id': node_id
                                            },
                                            metadata=MemoryMetadata(collaborator_ids=[from_id])))

        logger.info(f'{from_id} shared insight {node_id} with {len(recipients)} participants')
        return node_id

    def get_collaborative_knowledge(self) -> List[KnowledgeNode]:
        """Nodes verified by more than one participant."""
        with self._lock:
            return [n.copy() for n in self._nodes.values() if len(n.verified_by) > 1]

    def get_network(self) -> Dict[str, List[Dict[str, Any]]]:
        """Nodes and labelled directed edges for visualization."""
        with self._lock:
            nodes = [{
                'id': n.id,
                'label': self._node_label(n),
                'type': n.type,
                'participant': n.created_by
            } for n in self._nodes.values()]
            edges = [{
                'from': n.id,
                'to': related_id,
                'label': n.relations.get(related_id)
            } for n in self._nodes.values() for related_id in n.related_nodes]
        return {'nodes': nodes, 'edges': edges}

    def node_count(self) -> int:
        with self._lock:
            return len(self._nodes)

    def save_snapshot(self, path: Optional[str] = None) -> None:
        """Write every node to an atomic JSON snapshot."""
        with self._lock:
            data = [n.to_dict() for n in self._nodes.values()]
        write_document(path or self.config.snapshot_path, data)
        logger.info(f'Saved knowledge snapshot with {len(data)} nodes')

    def load_snapshot(self, path: Optional[str] = None) -> int:
        """Replace the graph with a snapshot; returns the node count loaded."""
        data = read_document(path or self.config.snapshot_path, default=[])
        try:
            nodes = [KnowledgeNode.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f'Corrupt knowledge snapshot: {e}')

        with self._lock:
            self._nodes = {n.id: n for n in nodes}
            self._tag_index = {}
            for node in nodes:
                for tag in node.tags:
                    self._tag_index.setdefault(tag, set()).add(node.id)
        logger.info(f'Loaded knowledge snapshot with {len(nodes)} nodes')
        return len(nodes)

    def _require(self, node_id: str) -> KnowledgeNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(f'Knowledge node not found: {node_id}')
        return node

    def _most_recent(self, created_by: str, node_type: str, exclude: str) -> Optional[KnowledgeNode]:
        candidates = [
            n for n in self._nodes.values()
            if n.created_by == created_by and n.type == node_type and n.id != exclude
        ]
        return max(candidates, key=lambda n: n.created_at, default=None)

    def _complementary_analyst(self, participant_id: str) -> Optional[str]:
        analysts = self.roles.market_analysts
        if len(analysts) != 2 or participant_id not in analysts:
            return None
        return analysts[1] if participant_id == analysts[0] else analysts[0]

    def _inconsistent(self, message: str, strict: bool) -> bool:
        if strict:
            raise ConsistencyError(message)
        logger.warning(f'{message}; ignoring')
        return False

    @staticmethod
    def _node_label(node: KnowledgeNode) -> str:
        if isinstance(node.content, dict):
            for key in ('title', 'asset', 'name'):
                if node.content.get(key):
                    return str(node.content[key])
        return f'{node.type}_{node.id[5:13]}'
