"""
Coordinator: multi-round dialogues, consensus and outcome feedback.
"""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..models.core import (CollaborationRequest, CollaborationResult, DialogueState, DialogueTurn, EvolutionTrigger,
                           MemoryMetadata, MemoryRecord)
from ..models.errors import AgentMindError, ValidationError
from ..utils.config import CoordinatorConfig
from ..utils.logging_config import get_logger
from ..utils.retry import CancelledError, call_with_retry
from ..utils.text_utils import keywords
from ..utils.timestamp_utils import utc_now
from .knowledge_graph import KnowledgeGraph
from .memory_store import MemoryStore
from .participants import Participant, ParticipantRegistry
from .personality_engine import PersonalityEngine

logger = get_logger(__name__)

FOLLOW_UP_PROMPT = 'Based on the discussion above, what would you add?'


class Coordinator:
    """Runs dialogues turn by turn and feeds their outcomes back into the substrate.

    Turns within one dialogue are strictly sequential. A dialogue moves
    idle -> running -> consensus -> done, or ends in failed/cancelled with
    every completed turn kept.
    """

    def __init__(self,
                 registry: ParticipantRegistry,
                 memory: MemoryStore,
                 knowledge: KnowledgeGraph,
                 personality: PersonalityEngine,
                 config: Optional[CoordinatorConfig] = None):
        """Initialize the coordinator.

        Args:
            registry: Participants and their generation capabilities
            memory: Store receiving each completed turn
            knowledge: Graph receiving promoted consensus
            personality: Engine receiving outcome triggers
            config: CoordinatorConfig instance, uses default if None
        """
        if config is None:
            from ..utils.config import config as app_config
            config = app_config.coordinator
        self.config = config
        self.registry = registry
        self.memory = memory
        self.knowledge = knowledge
        self.personality = personality

    @property
    def synthesizer(self) -> str:
        return self.config.synthesizer

    def collaborate(self, request: CollaborationRequest, cancel_event: Optional[threading.Event] = None) -> CollaborationResult:
        """Run a multi-round dialogue.

        Args:
            request: Participants, topic, optional context and round count (config.max_rounds when None)
            cancel_event: Stops the dialogue at the next turn boundary when set

        Returns:
            CollaborationResult; on failure status is 'failed' and error holds
            the structured error (capability or persistence failure) plus the round and turn index

        Raises:
            ValidationError: If the request names no or unknown participants
        """
        self._validate(request)
        rounds = self.config.max_rounds if request.max_rounds is None else request.max_rounds
        state = DialogueState(dialogue_id=f'dlg_{uuid.uuid4().hex[:12]}',
                              participants=list(request.participants),
                              topic=request.topic,
                              status='running')
        timeout = request.timeout or self.config.turn_timeout
        error = None

        logger.info(f'Dialogue {state.dialogue_id} on "{request.topic}" with {", ".join(state.participants)}')

        instruction = f'{request.context + chr(10) + chr(10) if request.context else ""}Topic: {request.topic}\n\nWhat are your thoughts?'
        # A lone participant sees its whole dialogue; otherwise the last len-1 turns
        window = len(state.participants) - 1

        try:
            for round_number in range(rounds):
                state.round = round_number
                for turn_index, participant_id in enumerate(state.participants):
                    state.turn_index = turn_index
                    participant = self.registry.get(participant_id)
                    history = state.turns[-window:] if window else list(state.turns)

                    message = self._speak(participant, history, instruction, request.topic, timeout, cancel_event)
                    if cancel_event is not None and cancel_event.is_set():
                        # Output of the in-flight turn is discarded
                        raise CancelledError('Dialogue cancelled mid-turn')

                    turn = DialogueTurn(participant_id=participant_id, message=message, timestamp=utc_now(), round=round_number)
                    self._record_turn(state, turn, instruction, request)
                    state.turns.append(turn)
                    instruction = FOLLOW_UP_PROMPT

        except CancelledError:
            state.status = 'cancelled'
            logger.warning(f'Dialogue {state.dialogue_id} cancelled after {len(state.turns)} turns')
        except AgentMindError as e:
            state.status = 'failed'
            error = e.to_dict()
            error.update({'round': state.round, 'turn_index': state.turn_index})
            logger.error(f'Dialogue {state.dialogue_id} failed in round {state.round}: {e}')

        metadata = {'rounds': rounds, 'participants': list(state.participants), 'topic': request.topic}

        if state.status == 'running':
            if len(state.participants) > 1:
                state.status = 'consensus'
                state.consensus = self._find_consensus(state, timeout, cancel_event, metadata)
            state.status = 'done'

        result = CollaborationResult(dialogue_id=state.dialogue_id,
                                     dialogue=list(state.turns),
                                     status=state.status,
                                     consensus=state.consensus,
                                     error=error,
                                     metadata=metadata)
        if request.record_outcome:
            self._feed_back(result, request)
        return result

    def run_concurrently(self, requests: List[CollaborationRequest], max_workers: Optional[int] = None) -> List[CollaborationResult]:
        """Run independent dialogues on a bounded pool; results keep request order."""
        if not requests:
            return []
        workers = max(1, min(max_workers or self.config.max_workers, len(requests)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='dialogue') as executor:
            futures = [executor.submit(self.collaborate, request) for request in requests]
            return [future.result() for future in futures]

    def call_participant(self,
                         participant_id: str,
                         prompt: str,
                         timeout: Optional[float] = None,
                         cancel_event: Optional[threading.Event] = None) -> str:
        """Single prompt to one participant with the shared deadline and retry policy."""
        participant = self.registry.get(participant_id)
        return self._speak(participant, [], prompt, None, timeout or self.config.turn_timeout, cancel_event)

    def invoke_capability(self, participant_id: str, capability: str, payload: dict, timeout: Optional[float] = None) -> dict:
        """Run a participant's structured capability under the shared retry policy."""
        participant = self.registry.get(participant_id)
        deadline = timeout or self.config.turn_timeout
        return call_with_retry(lambda: participant.invoke(capability, payload, deadline),
                               attempts=self.config.retry_attempts,
                               delay=self.config.retry_delay,
                               timeout=deadline,
                               label=f'{participant_id}.{capability}',
                               participant_id=participant_id)

    def _speak(self, participant: Participant, history, prompt: str, topic: Optional[str], timeout: float,
               cancel_event: Optional[threading.Event]) -> str:
        extra = self._prompt_context(participant.id, topic)
        return call_with_retry(lambda: participant.generate(history, prompt, timeout, extra),
                               attempts=self.config.retry_attempts,
                               delay=self.config.retry_delay,
                               timeout=timeout,
                               label=f'generate[{participant.id}]',
                               participant_id=participant.id,
                               cancel_event=cancel_event)

    def _prompt_context(self, participant_id: str, topic: Optional[str]) -> List[str]:
        """Current traits plus the participant's most relevant knowledge."""
        extra = []
        try:
            extra.append(self.personality.describe(participant_id))
        except AgentMindError:
            pass

        tags = keywords(topic) if topic else None
        nodes = self.knowledge.query(created_by=participant_id, tags=tags, limit=3)
        if nodes:
            lines = [f'- ({n.type}, confidence {n.confidence:.2f}) {str(n.content)[:200]}' for n in nodes]
            extra.append('Knowledge you have contributed:\n' + '\n'.join(lines))
        return extra

    def _find_consensus(self, state: DialogueState, timeout: float, cancel_event: Optional[threading.Event],
                        metadata: dict) -> Optional[str]:
        limit = self.config.excerpt_chars
        summary = '\n\n'.join(f'{t.participant_id}: {t.message[:limit]}...' for t in state.turns)
        prompt = (f'Given this multi-participant discussion on "{state.topic}":\n\n{summary}\n\n'
                  'What is the consensus view or key agreement points between the participants?\n'
                  'Provide a brief summary of areas of agreement and any notable differences.')
        try:
            participant = self.registry.get(self.synthesizer)
            return self._speak(participant, [], prompt, None, timeout, cancel_event)
        except (AgentMindError, CancelledError) as e:
            logger.warning(f'Consensus step for {state.dialogue_id} failed: {e}')
            metadata['consensus_error'] = str(e)
            return None

    def _record_turn(self, state: DialogueState, turn: DialogueTurn, prompt: str, request: CollaborationRequest) -> None:
        if not request.record_outcome:
            return
        others = [p for p in state.participants if p != turn.participant_id]
        self.memory.append(MemoryRecord(participant_id=turn.participant_id,
                                        kind='conversation',
                                        content={
                                            'message': prompt,
                                            'response': turn.message,
                                            'context': request.topic,
                                            'dialogue_id': state.dialogue_id,
                                            'round': turn.round
                                        },
                                        metadata=MemoryMetadata(collaborator_ids=others, tags=keywords(request.topic)),
                                        timestamp=turn.timestamp))

    def _feed_back(self, result: CollaborationResult, request: CollaborationRequest) -> None:
        """Promote consensus to knowledge and turn the outcome into memories and triggers."""
        if result.status == 'cancelled':
            return

        participants = list(request.participants)
        topic_tags = keywords(request.topic)
        success = result.status == 'done'

        try:
            if result.consensus:
                node_id = self.knowledge.add_node(type='insight',
                                                  content={'title': request.topic, 'consensus': result.consensus,
                                                           'dialogue_id': result.dialogue_id},
                                                  created_by=self.synthesizer,
                                                  confidence=0.6,
                                                  tags=['consensus', *topic_tags])
                result.metadata['knowledge_node_id'] = node_id

            if len(participants) > 1 and success:
                self.memory.append(MemoryRecord(participant_id=self.synthesizer,
                                                kind='decision',
                                                content={'decision': 'synthesize_consensus',
                                                         'reasoning': f'Consensus on {request.topic}',
                                                         'outcome': 'reached' if result.consensus else 'missing'},
                                                metadata=MemoryMetadata(success=result.consensus is not None,
                                                                        collaborator_ids=participants)))

            failed_id = (result.error or {}).get('participant_id')
            for participant_id in dict.fromkeys(participants):
                others = [p for p in participants if p != participant_id]
                self.memory.append(MemoryRecord(participant_id=participant_id,
                                                kind='collaboration',
                                                content={'topic': request.topic, 'dialogue_id': result.dialogue_id,
                                                         'status': result.status, 'turns': len(result.dialogue)},
                                                metadata=MemoryMetadata(success=success, collaborator_ids=others,
                                                                        tags=topic_tags)))
                if participant_id == failed_id:
                    trigger = EvolutionTrigger(type='failure', context=f'Failed turn on {request.topic}', magnitude=0.5)
                elif success and others:
                    trigger = EvolutionTrigger(type='collaboration', context=f'Dialogue on {request.topic}', magnitude=0.1)
                elif success:
                    trigger = EvolutionTrigger(type='success', context=f'Reflection on {request.topic}', magnitude=0.1)
                else:
                    continue
                if participant_id in self.personality.participants():
                    self.personality.evolve(participant_id, trigger)

        except AgentMindError as e:
            logger.error(f'Failed to record outcome of {result.dialogue_id}: {e}')
            result.metadata['feedback_error'] = str(e)

    def _validate(self, request: CollaborationRequest) -> None:
        if not request.participants:
            raise ValidationError('Collaboration requires at least one participant')
        if not request.topic or not request.topic.strip():
            raise ValidationError('Collaboration requires a topic')
        if request.max_rounds is not None and request.max_rounds < 1:
            raise ValidationError('max_rounds must be at least 1')
        for participant_id in request.participants:
            if participant_id not in self.registry:
                raise ValidationError(f'Unknown participant: {participant_id}')
