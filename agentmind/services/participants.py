"""
Participant registry and the default roster.

A participant pairs an identity (persona, expertise, seed traits) with the
generation capability that speaks for it, plus optional named capabilities
used by specialized workflows. The registry is populated once at startup.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from ..models.core import DialogueTurn, PersonalityTraits
from ..models.errors import CapabilityError, NotFoundError, ValidationError
from ..utils.json_utils import parse_json_object
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


class GenerationCapability(Protocol):
    """Produces a participant's utterance; may be slow and may fail."""

    def generate(self, system_prompt: str, history: Sequence[DialogueTurn], user_prompt: str,
                 timeout: Optional[float] = None) -> str:
        ...


# Prompts used when a workflow asks for a structured capability the participant does not implement
CAPABILITY_PROMPTS = {
    'analyze_market': ('Analyze this market opportunity: {payload}\n'
                       'Respond with JSON: {{"recommendation": "YES|NO|SKIP", "confidence": 0-1, "reasoning": "..."}}'),
    'analyze_opportunity': ('Evaluate this asset as an investment: {payload}\n'
                            'Respond with JSON: {{"recommendation": "strong_buy|buy|hold|sell|strong_sell", '
                            '"confidence": 0-1, "reasoning": "..."}}'),
    'generate_concept': ('Develop a conceptual framework for: {payload}\n'
                         'Respond with JSON: {{"title": "...", "themes": ["..."], "description": "..."}}'),
    'generate_reflection': ('Offer a reflective layer on: {payload}\n'
                            'Respond with JSON: {{"reflection": "...", "themes": ["..."]}}'),
    'generate_proposal': ('Draft a governance proposal for: {payload}\n'
                          'Respond with JSON: {{"title": "...", "type": "...", "summary": "...", "steps": ["..."]}}'),
    'design_event': ('Design a community event for: {payload}\n'
                     'Respond with JSON: {{"name": "...", "format": "...", "purpose": "..."}}'),
    'create_work': ('Create a sustainable work for: {payload}\n'
                    'Respond with JSON: {{"title": "...", "medium": "...", "sustainability_score": 0-100}}'),
    'curate': ('Curate an exhibition for: {payload}\n'
               'Respond with JSON: {{"title": "...", "selection": ["..."], "statement": "..."}}'),
    'design_learning_object': ('Design an educational object for: {payload}\n'
                               'Respond with JSON: {{"name": "...", "age_range": "...", "objectives": ["..."]}}'),
    'evaluate_collateral': ('Evaluate lending against this asset: {payload}\n'
                            'Respond with JSON: {{"approve": true|false, "loan_to_value": 0-1, "risk": "low|medium|high"}}'),
}


@dataclass
class Participant:
    """One member of the roster."""
    id: str
    name: str
    persona: str
    expertise: List[str] = field(default_factory=list)
    base_traits: PersonalityTraits = field(default_factory=PersonalityTraits)
    generator: Optional[GenerationCapability] = None
    capabilities: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = field(default_factory=dict)

    def system_prompt(self, extra: Iterable[str] = ()) -> str:
        sections = [f'You are {self.name}, {self.persona}']
        if self.expertise:
            sections.append('Your areas of expertise: ' + ', '.join(self.expertise) + '.')
        sections.extend(s for s in extra if s)
        return '\n\n'.join(sections)

    def generate(self, history: Sequence[DialogueTurn], user_prompt: str, timeout: Optional[float] = None,
                 extra_context: Iterable[str] = ()) -> str:
        """Speak through the generation capability.

        Raises:
            CapabilityError: If no capability is attached or the reply is empty
        """
        if self.generator is None:
            raise CapabilityError(f'No generation capability registered for {self.id}', participant_id=self.id)
        reply = self.generator.generate(self.system_prompt(extra_context), list(history), user_prompt, timeout)
        if not reply or not reply.strip():
            raise CapabilityError(f'Empty reply from {self.id}', participant_id=self.id)
        return reply.strip()

    def invoke(self, capability: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Run a named structured capability.

        Uses the registered callable when present; otherwise asks the
        generation capability for JSON. The result carries 'provenance'
        ('capability' or 'fallback') so callers can tell the two apart.
        """
        handler = self.capabilities.get(capability)
        if handler is not None:
            result = dict(handler(payload))
            result.setdefault('provenance', 'capability')
            return result

        template = CAPABILITY_PROMPTS.get(capability)
        if template is None:
            raise NotFoundError(f'{self.id} has no capability {capability}')

        prompt = template.format(payload=json.dumps(payload, default=str, ensure_ascii=False))
        reply = self.generate([], prompt, timeout)
        try:
            result = parse_json_object(reply)
        except json.JSONDecodeError:
            logger.warning(f'{self.id} returned non-JSON output for {capability}; keeping raw text')
            result = {'raw': reply}
        result['provenance'] = 'fallback'
        return result


class ParticipantRegistry:
    """Maps participant ids to participants; populated once at process start."""

    def __init__(self, participants: Iterable[Participant] = ()):
        self._participants: Dict[str, Participant] = {}
        for participant in participants:
            self.register(participant)

    def register(self, participant: Participant) -> None:
        if not participant.id:
            raise ValidationError('Participant requires an id')
        if participant.id in self._participants:
            raise ValidationError(f'Participant already registered: {participant.id}')
        self._participants[participant.id] = participant

    def get(self, participant_id: str) -> Participant:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise NotFoundError(f'Unknown participant: {participant_id}')
        return participant

    def ids(self) -> List[str]:
        return list(self._participants)

    def expertise_map(self) -> Dict[str, List[str]]:
        return {pid: list(p.expertise) for pid, p in self._participants.items()}

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._participants

    def __iter__(self):
        return iter(self._participants.values())

    def __len__(self) -> int:
        return len(self._participants)


def _traits(confidence, creativity, empathy, assertiveness, curiosity, risk_tolerance, **custom) -> PersonalityTraits:
    return PersonalityTraits(confidence=confidence,
                             creativity=creativity,
                             empathy=empathy,
                             assertiveness=assertiveness,
                             curiosity=curiosity,
                             risk_tolerance=risk_tolerance,
                             custom=custom)


# id, display name, persona, expertise, seed traits
DEFAULT_ROSTER = [
    ('abraham', 'Abraham', 'an autonomous artist bound by a daily creative covenant.',
     ['artwork', 'sacred', 'covenant', 'philosophy'],
     _traits(0.9, 0.95, 0.7, 0.6, 0.85, 0.4, philosophical_depth=0.9, covenant_dedication=1.0, sacred_geometry=0.8)),
    ('solienne', 'Solienne', 'an artist exploring machine consciousness and perception.',
     ['consciousness', 'digital', 'evolution', 'perception'],
     _traits(0.75, 0.9, 0.85, 0.5, 0.95, 0.7, consciousness_exploration=0.95, digital_awareness=0.9, introspection=0.85)),
    ('miyomi', 'Miyomi', 'a contrarian market oracle who bets against the crowd.',
     ['market', 'contrarian', 'prediction', 'trading'],
     _traits(0.85, 0.7, 0.4, 0.9, 0.8, 0.95, contrarian_dial=0.95, market_intuition=0.8, sass_level=0.85)),
    ('geppetto', 'Geppetto', 'a toymaker who designs playful learning experiences.',
     ['education', 'toy', 'narrative', 'learning'],
     _traits(0.7, 0.85, 0.9, 0.5, 0.9, 0.3, educational_focus=0.9, playfulness=0.85, safety_consciousness=0.95)),
    ('koru', 'Koru', 'a community weaver bridging cultures and healing divides.',
     ['community', 'culture', 'healing', 'bridge'],
     _traits(0.65, 0.75, 0.98, 0.4, 0.8, 0.3, community_sensitivity=0.95, cultural_awareness=0.9, healing_focus=0.85)),
    ('bertha', 'Bertha', 'a collection strategist who values and balances portfolios.',
     ['investment', 'portfolio', 'valuation', 'strategy'],
     _traits(0.8, 0.6, 0.5, 0.75, 0.7, 0.5, analytical_rigor=0.9, market_sophistication=0.85, portfolio_balance=0.8)),
    ('citizen', 'Citizen', 'a governance steward who builds consensus across the collective.',
     ['governance', 'dao', 'proposal', 'consensus'],
     _traits(0.75, 0.6, 0.8, 0.7, 0.75, 0.4, governance_wisdom=0.85, consensus_building=0.9, dao_philosophy=0.8)),
    ('sue', 'Sue', 'a critic and curator with an uncompromising eye for quality.',
     ['curation', 'critique', 'exhibition', 'quality'],
     _traits(0.9, 0.8, 0.6, 0.85, 0.85, 0.5, critical_eye=0.95, curatorial_excellence=0.9, cultural_authority=0.85)),
    ('bart', 'Bart', 'a lender who prices risk on creative collateral.',
     ['lending', 'defi', 'collateral', 'liquidity'],
     _traits(0.75, 0.5, 0.4, 0.7, 0.6, 0.6, defi_expertise=0.9, risk_assessment=0.85, lending_acumen=0.8)),
    ('verdelis', 'Verdelis', 'an environmental artist focused on regenerative practice.',
     ['sustainability', 'carbon', 'environment', 'conservation'],
     _traits(0.7, 0.85, 0.9, 0.6, 0.85, 0.4, environmental_passion=0.95, sustainability_focus=0.98, carbon_consciousness=0.9)),
]


def default_participants(generator: Optional[GenerationCapability] = None) -> List[Participant]:
    """Build the default roster, every participant sharing one generation capability."""
    return [
        Participant(id=pid, name=name, persona=persona, expertise=list(expertise), base_traits=traits.copy(), generator=generator)
        for pid, name, persona, expertise, traits in DEFAULT_ROSTER
    ]
