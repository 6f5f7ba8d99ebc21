"""
Personality Engine: trait vectors that evolve through weighted triggers.
"""

import threading
from collections import deque
from typing import Any, Dict, List, Mapping, Optional

from ..models.core import (CORE_TRAITS, INTERACTION_OUTCOMES, TRIGGER_TYPES, Adaptation, EvolutionEvent, EvolutionTrigger,
                           MemoryMetadata, MemoryRecord, PersonalityProfile, PersonalityTraits)
from ..models.errors import NotFoundError, PersistenceError, ValidationError
from ..utils.config import PersonalityConfig
from ..utils.file_store import read_document, write_document
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from .memory_store import MemoryStore

logger = get_logger(__name__)

# Complementary traits score well when they differ, aligned traits when they match
COMPLEMENTARY_TRAITS = ('assertiveness', 'risk_tolerance')
ALIGNED_TRAITS = ('creativity', 'empathy', 'curiosity')


class PersonalityEngine:
    """Per-participant trait state machine.

    Every update computes raw per-trait deltas from the trigger type, damps
    them by (1 - stability_factor) and clamps the result to [0, 1].
    Evolution history keeps the most recent history_limit events, dropping
    the oldest first.
    """

    def __init__(self, config: Optional[PersonalityConfig] = None, memory: Optional[MemoryStore] = None):
        """Initialize the personality engine.

        Args:
            config: PersonalityConfig instance, uses default if None
            memory: Optional store receiving a 'training' audit record per update
        """
        if config is None:
            from ..utils.config import config as app_config
            config = app_config.personality
        self.config = config
        self.memory = memory
        self._profiles: Dict[str, PersonalityProfile] = {}
        self._lock = threading.RLock()

    def register(self, participant_id: str, base_traits: PersonalityTraits) -> PersonalityProfile:
        """Create a profile seeded with base_traits (re-registering resets it).

        Out-of-range seed values are clamped to [0, 1].
        """
        if not participant_id:
            raise ValidationError('Profile requires participant_id')
        seed = PersonalityTraits.from_dict(base_traits.to_dict())
        profile = PersonalityProfile(participant_id=participant_id,
                                     base_traits=seed,
                                     current_traits=seed.copy(),
                                     evolution_history=deque(maxlen=self.config.history_limit))
        with self._lock:
            self._profiles[participant_id] = profile
        return profile

    def participants(self) -> List[str]:
        with self._lock:
            return list(self._profiles)

    def get_profile(self, participant_id: str) -> PersonalityProfile:
        with self._lock:
            profile = self._profiles.get(participant_id)
        if profile is None:
            raise NotFoundError(f'No personality profile for {participant_id}')
        return profile

    def get_traits(self, participant_id: str) -> PersonalityTraits:
        """Copy of the participant's current traits."""
        with self._lock:
            return self.get_profile(participant_id).current_traits.copy()

    def evolve(self, participant_id: str, trigger: EvolutionTrigger) -> PersonalityTraits:
        """Apply a trigger to a participant's traits.

        The update is computed on a copy; the profile only changes once the
        training audit record (when a memory store is attached) is written.

        Returns:
            Copy of the updated traits

        Raises:
            ValidationError: If the trigger is malformed
            NotFoundError: If the participant has no profile
            PersistenceError: If the audit record cannot be written; traits are left unchanged
        """
        self._validate_trigger(trigger)
        return self._evolve(participant_id, trigger)

    def _evolve(self, participant_id: str, trigger: EvolutionTrigger,
                starting: Optional[PersonalityTraits] = None) -> PersonalityTraits:
        with self._lock:
            profile = self.get_profile(participant_id)
            old_traits = profile.current_traits.copy()
            new_traits = (starting or old_traits).copy()
            applied = self._apply_changes(new_traits, self._calculate_changes(trigger))

            if self.memory is not None:
                self.memory.append(MemoryRecord(participant_id=participant_id,
                                                kind='training',
                                                content={
                                                    'type': 'personality_evolution',
                                                    'trigger': trigger.to_dict(),
                                                    'old_traits': old_traits.to_dict(),
                                                    'new_traits': new_traits.to_dict(),
                                                    'changes': applied
                                                },
                                                metadata=MemoryMetadata(success=trigger.type == 'success',
                                                                        confidence=new_traits.confidence)))

            profile.current_traits = new_traits
            profile.evolution_history.append(EvolutionEvent(timestamp=utc_now(),
                                                            traits=new_traits.copy(),
                                                            trigger=trigger.describe(),
                                                            delta=applied))
            self._update_adaptations(profile, trigger)

        logger.debug(f'Evolved {participant_id} on {trigger.type} (magnitude {trigger.magnitude})')
        return new_traits.copy()

    def adjust_from_interaction(self, participant_id: str, other_id: str, outcome: str) -> PersonalityTraits:
        """Adjust a participant after interacting with another.

        A positive outcome pulls every core trait slightly toward the other
        participant's value before a collaboration trigger; a negative one
        applies a learning trigger that lowers confidence and raises
        assertiveness; neutral changes nothing.
        """
        if outcome not in INTERACTION_OUTCOMES:
            raise ValidationError(f'Unknown interaction outcome: {outcome}')

        with self._lock:
            profile = self.get_profile(participant_id)
            other = self.get_profile(other_id)

            if outcome == 'positive':
                influence = self.config.interaction_influence
                nudged = profile.current_traits.copy()
                for trait in CORE_TRAITS:
                    current = nudged.get(trait)
                    nudged.set(trait, current + (other.current_traits.get(trait) - current) * influence)
                return self._evolve(participant_id,
                                    EvolutionTrigger(type='collaboration',
                                                     context=f'Positive interaction with {other_id}',
                                                     magnitude=0.1),
                                    starting=nudged)

            if outcome == 'negative':
                return self.evolve(participant_id,
                                   EvolutionTrigger(type='learning',
                                                    context=f'Challenging interaction with {other_id}',
                                                    magnitude=-0.05,
                                                    specific_traits={
                                                        'confidence': -0.02,
                                                        'assertiveness': 0.02
                                                    }))

            return profile.current_traits.copy()

    def analyze_compatibility(self, participant_a: str, participant_b: str) -> Dict[str, Any]:
        """Score how well two participants work together, with qualitative notes."""
        traits_a = self.get_traits(participant_a)
        traits_b = self.get_traits(participant_b)

        terms = [abs(traits_a.get(t) - traits_b.get(t)) for t in COMPLEMENTARY_TRAITS]
        terms += [1 - abs(traits_a.get(t) - traits_b.get(t)) for t in ALIGNED_TRAITS]
        score = sum(terms) / len(terms)

        strengths: List[str] = []
        challenges: List[str] = []
        recommendations: List[str] = []

        if traits_a.creativity > 0.7 and traits_b.creativity > 0.7:
            strengths.append('Both highly creative - excellent for innovative collaborations')
        if abs(traits_a.assertiveness - traits_b.assertiveness) > 0.4:
            strengths.append('Complementary assertiveness levels - natural leader/supporter dynamic')
        if abs(traits_a.curiosity - traits_b.curiosity) < 0.1 and traits_a.curiosity > 0.7:
            strengths.append('Shared curiosity - likely to explore ideas together')

        if traits_a.empathy < 0.5 and traits_b.empathy < 0.5:
            challenges.append('Both have lower empathy - may struggle with community aspects')
            mediator = self._top_participant('empathy', exclude=(participant_a, participant_b))
            recommendations.append(f'Include a high-empathy participant{f" such as {mediator}" if mediator else ""} in collaborations')
        if traits_a.risk_tolerance > 0.7 and traits_b.risk_tolerance > 0.7:
            challenges.append('Both high risk tolerance - may need conservative voice')
            cautious = self._lowest_participant('risk_tolerance', exclude=(participant_a, participant_b))
            recommendations.append(f'Consult a risk-averse participant{f" such as {cautious}" if cautious else ""} for risk assessment')
        if traits_a.assertiveness > 0.8 and traits_b.assertiveness > 0.8:
            challenges.append('Both strongly assertive - may compete for direction')
            recommendations.append('Agree on a lead before starting')

        return {
            'score': score,
            'strengths': strengths,
            'challenges': challenges,
            'recommendations': recommendations
        }

    def get_insights(self, participant_id: str) -> Dict[str, Any]:
        """Summarize a participant's trend, dominant traits and collaboration style."""
        with self._lock:
            profile = self.get_profile(participant_id)
            traits = profile.current_traits.copy()
            history = list(profile.evolution_history)

        evolution = 'Stable'
        if len(history) > 10:
            recent = history[-10:]
            avg_confidence_change = sum(e.delta.get('confidence', 0.0) for e in recent) / len(recent)
            if avg_confidence_change > 0.001:
                evolution = 'Growing more confident'
            elif avg_confidence_change < -0.001:
                evolution = 'Becoming more cautious'

        dominant = [
            label for trait, label in (('confidence', 'Highly confident'), ('creativity', 'Very creative'),
                                       ('empathy', 'Deeply empathetic'), ('assertiveness', 'Strongly assertive'),
                                       ('risk_tolerance', 'Risk-taking')) if traits.get(trait) > 0.8
        ]
        growth_areas = [
            label for trait, label in (('confidence', 'Building confidence'), ('creativity', 'Expanding creativity'),
                                       ('empathy', 'Developing empathy'), ('curiosity', 'Increasing curiosity'))
            if traits.get(trait) < 0.4
        ]

        style = 'Balanced'
        if traits.assertiveness > 0.7 and traits.confidence > 0.7:
            style = 'Leader - Takes charge in group settings'
        elif traits.empathy > 0.7 and traits.assertiveness < 0.5:
            style = 'Supporter - Facilitates and harmonizes'
        elif traits.creativity > 0.8 and traits.curiosity > 0.8:
            style = 'Innovator - Brings new ideas and perspectives'
        elif traits.risk_tolerance < 0.4 and traits.empathy > 0.6:
            style = 'Stabilizer - Provides grounding and caution'

        return {
            'current': traits.to_dict(),
            'evolution': evolution,
            'dominant_traits': dominant,
            'growth_areas': growth_areas,
            'collaboration_style': style
        }

    def describe(self, participant_id: str) -> str:
        """One-line trait summary for prompt building."""
        traits = self.get_traits(participant_id)
        parts = [f'{t.replace("_", " ")} {traits.get(t):.2f}' for t in CORE_TRAITS]
        return 'Current disposition: ' + ', '.join(parts)

    def save_snapshot(self, path: Optional[str] = None) -> None:
        with self._lock:
            data = [p.to_dict() for p in self._profiles.values()]
        write_document(path or self.config.snapshot_path, data)
        logger.info(f'Saved {len(data)} personality profiles')

    def load_snapshot(self, path: Optional[str] = None) -> int:
        """Restore profiles from a snapshot, replacing those with the same id."""
        data = read_document(path or self.config.snapshot_path, default=[])
        try:
            profiles = [PersonalityProfile.from_dict(item, self.config.history_limit) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f'Corrupt personality snapshot: {e}')
        with self._lock:
            for profile in profiles:
                self._profiles[profile.participant_id] = profile
        logger.info(f'Loaded {len(profiles)} personality profiles')
        return len(profiles)

    def _validate_trigger(self, trigger: EvolutionTrigger) -> None:
        if trigger.type not in TRIGGER_TYPES:
            raise ValidationError(f'Unknown trigger type: {trigger.type}')
        if not isinstance(trigger.magnitude, (int, float)) or not -1.0 <= trigger.magnitude <= 1.0:
            raise ValidationError(f'Trigger magnitude must be in [-1, 1]: {trigger.magnitude}')
        for name, value in trigger.specific_traits.items():
            if not isinstance(value, (int, float)):
                raise ValidationError(f'Specific trait {name} must be numeric')

    def _calculate_changes(self, trigger: EvolutionTrigger) -> Dict[str, float]:
        rate = self.config.evolution_rate
        magnitude = trigger.magnitude
        changes: Dict[str, float] = {}

        if trigger.type == 'success':
            changes['confidence'] = rate * magnitude
            changes['assertiveness'] = rate * magnitude * 0.5
        elif trigger.type == 'failure':
            changes['confidence'] = -rate * abs(magnitude) * 0.5
            changes['curiosity'] = rate * 0.3
            changes['risk_tolerance'] = -rate * 0.2
        elif trigger.type == 'collaboration':
            changes['empathy'] = rate * magnitude
            changes['creativity'] = rate * magnitude * 0.3
        elif trigger.type == 'feedback':
            changes['confidence'] = rate * magnitude * 0.7
            changes['curiosity'] = rate * 0.2
        elif trigger.type == 'learning':
            changes['curiosity'] = rate * abs(magnitude)
            changes['creativity'] = rate * abs(magnitude) * 0.5

        for trait, value in trigger.specific_traits.items():
            changes[trait] = value * rate

        return changes

    def _apply_changes(self, traits: PersonalityTraits, changes: Mapping[str, float]) -> Dict[str, float]:
        """Damp, apply and clamp; returns the change that actually landed per trait."""
        applied = {}
        damping = 1 - self.config.stability_factor
        for trait, change in changes.items():
            current = traits.get(trait)
            if current is None:
                # Custom traits only evolve once they exist on the profile
                continue
            traits.set(trait, current + change * damping)
            applied[trait] = traits.get(trait) - current
        return applied

    def _update_adaptations(self, profile: PersonalityProfile, trigger: EvolutionTrigger) -> None:
        pattern = f'{trigger.type}_{trigger.context[:20]}'
        adaptation = next((a for a in profile.adaptations if a.pattern == pattern), None)
        if adaptation is None:
            adaptation = Adaptation(pattern=pattern)
            profile.adaptations.append(adaptation)

        adaptation.frequency += 1
        adaptation.impact = (adaptation.impact * (adaptation.frequency - 1) + trigger.magnitude) / adaptation.frequency

        profile.adaptations.sort(key=lambda a: a.frequency, reverse=True)
        del profile.adaptations[self.config.adaptation_limit:]

    def _top_participant(self, trait: str, exclude) -> Optional[str]:
        with self._lock:
            candidates = [(p.current_traits.get(trait), pid) for pid, p in self._profiles.items() if pid not in exclude]
        return max(candidates)[1] if candidates else None

    def _lowest_participant(self, trait: str, exclude) -> Optional[str]:
        with self._lock:
            candidates = [(p.current_traits.get(trait), pid) for pid, p in self._profiles.items() if pid not in exclude]
        return min(candidates)[1] if candidates else None
