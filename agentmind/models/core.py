"""
Core data models for the shared-cognition substrate.
"""

from collections import deque
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Set

from ..utils.timestamp_utils import from_iso, to_iso, utc_now

MEMORY_KINDS = ('conversation', 'decision', 'creation', 'collaboration', 'training')
NODE_TYPES = ('concept', 'artifact', 'market', 'proposal', 'event', 'pattern', 'insight')
TRIGGER_TYPES = ('success', 'failure', 'collaboration', 'feedback', 'learning')
INTERACTION_OUTCOMES = ('positive', 'negative', 'neutral')
CORE_TRAITS = ('confidence', 'creativity', 'empathy', 'assertiveness', 'curiosity', 'risk_tolerance')


@dataclass
class MemoryMetadata:
    """Optional annotations on a memory record."""
    success: Optional[bool] = None
    confidence: Optional[float] = None
    collaborator_ids: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        if self.success is not None:
            data['success'] = self.success
        if self.confidence is not None:
            data['confidence'] = self.confidence
        if self.collaborator_ids:
            data['collaborator_ids'] = list(self.collaborator_ids)
        if self.tags:
            data['tags'] = list(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'MemoryMetadata':
        data = data or {}
        return cls(success=data.get('success'),
                   confidence=data.get('confidence'),
                   collaborator_ids=list(data.get('collaborator_ids', [])),
                   tags=list(data.get('tags', [])))


@dataclass
class MemoryRecord:
    """One entry in a participant's append-only memory log.

    Records are never modified after append; content is a kind-specific dict
    (a decision carries 'decision', 'reasoning' and optionally 'outcome').
    """
    participant_id: str
    kind: str
    content: Dict[str, Any] = field(default_factory=dict)
    metadata: MemoryMetadata = field(default_factory=MemoryMetadata)
    id: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'participant_id': self.participant_id,
            'timestamp': to_iso(self.timestamp),
            'kind': self.kind,
            'content': self.content,
            'metadata': self.metadata.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryRecord':
        return cls(id=data.get('id'),
                   participant_id=data.get('participant_id', ''),
                   timestamp=from_iso(data.get('timestamp')),
                   kind=data.get('kind', ''),
                   content=data.get('content') or {},
                   metadata=MemoryMetadata.from_dict(data.get('metadata')))


@dataclass
class LearningPattern:
    """Frequency and success statistics mined from decision records."""
    pattern_key: str
    frequency: int = 0
    success_rate: float = 0.0
    last_seen: datetime = field(default_factory=utc_now)
    examples: Deque[str] = field(default_factory=lambda: deque(maxlen=10))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pattern_key': self.pattern_key,
            'frequency': self.frequency,
            'success_rate': self.success_rate,
            'last_seen': to_iso(self.last_seen),
            'examples': list(self.examples)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], max_examples: int = 10) -> 'LearningPattern':
        return cls(pattern_key=data['pattern_key'],
                   frequency=int(data.get('frequency', 0)),
                   success_rate=float(data.get('success_rate', 0.0)),
                   last_seen=from_iso(data.get('last_seen')) or utc_now(),
                   examples=deque(data.get('examples', []), maxlen=max_examples))


@dataclass
class MemorySummary:
    """Learning summary for one participant."""
    participant_id: str
    total_count: int
    counts_by_kind: Dict[str, int]
    top_patterns: List[LearningPattern]
    recent_activity: List[MemoryRecord]
    success_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'participant_id': self.participant_id,
            'total_count': self.total_count,
            'counts_by_kind': dict(self.counts_by_kind),
            'top_patterns': [p.to_dict() for p in self.top_patterns],
            'recent_activity': [r.to_dict() for r in self.recent_activity],
            'success_rate': self.success_rate
        }


@dataclass
class KnowledgeNode:
    """A shared unit of knowledge in the cross-participant graph.

    related_nodes holds ids only; relations maps each related id to the
    label of that edge.
    """
    id: str
    type: str
    content: Any
    created_by: str
    created_at: datetime
    confidence: float = 0.5
    verified_by: List[str] = field(default_factory=list)
    related_nodes: List[str] = field(default_factory=list)
    relations: Dict[str, str] = field(default_factory=dict)
    tags: Set[str] = field(default_factory=set)

    def copy(self) -> 'KnowledgeNode':
        """Detached copy; changing it never touches the graph."""
        return replace(self,
                       content=deepcopy(self.content),
                       verified_by=list(self.verified_by),
                       related_nodes=list(self.related_nodes),
                       relations=dict(self.relations),
                       tags=set(self.tags))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'content': self.content,
            'created_by': self.created_by,
            'created_at': to_iso(self.created_at),
            'confidence': self.confidence,
            'verified_by': list(self.verified_by),
            'related_nodes': list(self.related_nodes),
            'relations': dict(self.relations),
            'tags': sorted(self.tags)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KnowledgeNode':
        return cls(id=data['id'],
                   type=data['type'],
                   content=data.get('content'),
                   created_by=data['created_by'],
                   created_at=from_iso(data.get('created_at')) or utc_now(),
                   confidence=float(data.get('confidence', 0.5)),
                   verified_by=list(data.get('verified_by', [])),
                   related_nodes=list(data.get('related_nodes', [])),
                   relations=dict(data.get('relations', {})),
                   tags=set(data.get('tags', [])))


@dataclass
class PersonalityTraits:
    """Core behavioural tendencies plus participant-specific custom traits, all in [0, 1]."""
    confidence: float = 0.5
    creativity: float = 0.5
    empathy: float = 0.5
    assertiveness: float = 0.5
    curiosity: float = 0.5
    risk_tolerance: float = 0.5
    custom: Dict[str, float] = field(default_factory=dict)

    def get(self, name: str) -> Optional[float]:
        if name in CORE_TRAITS:
            return getattr(self, name)
        return self.custom.get(name)

    def set(self, name: str, value: float) -> None:
        value = max(0.0, min(1.0, float(value)))
        if name in CORE_TRAITS:
            setattr(self, name, value)
        else:
            self.custom[name] = value

    def copy(self) -> 'PersonalityTraits':
        return PersonalityTraits(**{t: getattr(self, t) for t in CORE_TRAITS}, custom=dict(self.custom))

    def to_dict(self) -> Dict[str, Any]:
        data = {t: getattr(self, t) for t in CORE_TRAITS}
        data['custom'] = dict(self.custom)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PersonalityTraits':
        traits = cls(custom={})
        for name in CORE_TRAITS:
            if name in data:
                traits.set(name, data[name])
        for name, value in (data.get('custom') or {}).items():
            traits.set(name, value)
        return traits


@dataclass
class EvolutionTrigger:
    """Event classification driving a personality update."""
    type: str
    context: str
    magnitude: float
    specific_traits: Dict[str, float] = field(default_factory=dict)

    def describe(self) -> str:
        return f'{self.type}: {self.context}'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'context': self.context,
            'magnitude': self.magnitude,
            'specific_traits': dict(self.specific_traits)
        }


@dataclass
class EvolutionEvent:
    """One entry of a profile's evolution history."""
    timestamp: datetime
    traits: PersonalityTraits
    trigger: str
    delta: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': to_iso(self.timestamp),
            'traits': self.traits.to_dict(),
            'trigger': self.trigger,
            'delta': dict(self.delta)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EvolutionEvent':
        return cls(timestamp=from_iso(data.get('timestamp')) or utc_now(),
                   traits=PersonalityTraits.from_dict(data.get('traits', {})),
                   trigger=data.get('trigger', ''),
                   delta=dict(data.get('delta', {})))


@dataclass
class Adaptation:
    """How often a trigger pattern recurs and its average magnitude."""
    pattern: str
    frequency: int = 0
    impact: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {'pattern': self.pattern, 'frequency': self.frequency, 'impact': self.impact}


@dataclass
class PersonalityProfile:
    """Trait state of one participant. base_traits is never mutated."""
    participant_id: str
    base_traits: PersonalityTraits
    current_traits: PersonalityTraits
    evolution_history: Deque[EvolutionEvent] = field(default_factory=lambda: deque(maxlen=100))
    adaptations: List[Adaptation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'participant_id': self.participant_id,
            'base_traits': self.base_traits.to_dict(),
            'current_traits': self.current_traits.to_dict(),
            'evolution_history': [e.to_dict() for e in self.evolution_history],
            'adaptations': [a.to_dict() for a in self.adaptations]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], history_limit: int = 100) -> 'PersonalityProfile':
        return cls(participant_id=data['participant_id'],
                   base_traits=PersonalityTraits.from_dict(data['base_traits']),
                   current_traits=PersonalityTraits.from_dict(data['current_traits']),
                   evolution_history=deque((EvolutionEvent.from_dict(e) for e in data.get('evolution_history', [])),
                                           maxlen=history_limit),
                   adaptations=[Adaptation(**a) for a in data.get('adaptations', [])])


@dataclass
class DialogueTurn:
    """One utterance in a dialogue."""
    participant_id: str
    message: str
    timestamp: datetime
    round: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'participant_id': self.participant_id,
            'message': self.message,
            'timestamp': to_iso(self.timestamp),
            'round': self.round
        }


@dataclass
class DialogueState:
    """Transient state of a running dialogue."""
    dialogue_id: str
    participants: List[str]
    topic: str
    status: str = 'idle'
    round: int = 0
    turn_index: int = 0
    turns: List[DialogueTurn] = field(default_factory=list)
    consensus: Optional[str] = None


@dataclass
class CollaborationRequest:
    """Parameters of a multi-participant dialogue."""
    participants: List[str]
    topic: str
    context: Optional[str] = None
    max_rounds: Optional[int] = None
    timeout: Optional[float] = None
    record_outcome: bool = True


@dataclass
class CollaborationResult:
    """Outcome of a dialogue; dialogue holds every completed turn even on failure."""
    dialogue_id: str
    dialogue: List[DialogueTurn]
    status: str
    consensus: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == 'done'

    def last_message(self) -> Optional[str]:
        return self.dialogue[-1].message if self.dialogue else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dialogue_id': self.dialogue_id,
            'dialogue': [t.to_dict() for t in self.dialogue],
            'status': self.status,
            'consensus': self.consensus,
            'error': self.error,
            'metadata': dict(self.metadata)
        }


@dataclass
class WorkflowResult:
    """Outcome of a specialized workflow."""
    workflow: str
    status: str
    outputs: List[Dict[str, Any]] = field(default_factory=list)
    knowledge_nodes: List[str] = field(default_factory=list)
    memories_created: int = 0
    duration: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def output(self, participant_id: str, type: str) -> Optional[Any]:
        for entry in self.outputs:
            if entry['participant_id'] == participant_id and entry['type'] == type:
                return entry['data']
        return None

    def to_dict(self) -> Dict[str, Any]:
        outputs = []
        for entry in self.outputs:
            data = entry['data']
            outputs.append({**entry, 'data': data.to_dict() if hasattr(data, 'to_dict') else data})
        return {
            'workflow': self.workflow,
            'status': self.status,
            'outputs': outputs,
            'knowledge_nodes': list(self.knowledge_nodes),
            'memories_created': self.memories_created,
            'duration': self.duration,
            'metadata': dict(self.metadata)
        }
