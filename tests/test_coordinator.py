"""
Tests for dialogue orchestration and outcome feedback.
"""

import threading
from unittest.mock import patch

import pytest

from agentmind.models.core import CollaborationRequest
from agentmind.models.errors import PersistenceError, ValidationError
from agentmind.services.coordinator import FOLLOW_UP_PROMPT
from agentmind.services.system import build_system


def is_consensus_prompt(prompt):
    return prompt.startswith('Given this multi-participant discussion')


def request(*participants, **kwargs):
    kwargs.setdefault('topic', 'Generative covenant art')
    return CollaborationRequest(participants=list(participants), **kwargs)


class TestDialogue:

    def test_two_participants_two_rounds(self, system, fake_generator):
        result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=2))

        assert result.status == 'done'
        assert [t.participant_id for t in result.dialogue] == ['abraham', 'solienne', 'abraham', 'solienne']
        assert [t.round for t in result.dialogue] == [0, 0, 1, 1]
        assert result.consensus
        assert fake_generator.speakers() == ['abraham', 'solienne', 'abraham', 'solienne', 'citizen']

    def test_prompts_and_history_window(self, system, fake_generator):
        system.coordinator.collaborate(request('abraham', 'solienne', 'koru', max_rounds=1, context='Gallery opening'))

        first, second, third = fake_generator.calls[:3]
        assert first['user_prompt'] == 'Gallery opening\n\nTopic: Generative covenant art\n\nWhat are your thoughts?'
        assert second['user_prompt'] == FOLLOW_UP_PROMPT
        assert first['history'] == []
        assert [t.participant_id for t in second['history']] == ['abraham']
        assert [t.participant_id for t in third['history']] == ['abraham', 'solienne']
        assert 'Current disposition' in first['system_prompt']

    def test_consensus_prompt_uses_excerpts(self, app_config, fake_generator):
        fake_generator.responder = lambda speaker, prompt, index: 'x' * 500
        system = build_system(app_config, generator=fake_generator)

        system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=1))

        consensus_call = fake_generator.calls[-1]
        assert is_consensus_prompt(consensus_call['user_prompt'])
        assert 'x' * 200 + '...' in consensus_call['user_prompt']
        assert 'x' * 201 not in consensus_call['user_prompt']

    def test_knowledge_feeds_system_prompt(self, system, fake_generator):
        system.knowledge.add_node('artifact', {'title': 'Covenant 42'}, created_by='abraham', tags=['covenant'])

        system.coordinator.collaborate(request('abraham', topic='Covenant practice', max_rounds=1))

        assert 'Covenant 42' in fake_generator.calls[0]['system_prompt']

    def test_single_participant_has_no_consensus(self, system, fake_generator):
        result = system.coordinator.collaborate(request('koru', max_rounds=2))

        assert result.status == 'done'
        assert result.consensus is None
        assert len(result.dialogue) == 2
        assert 'citizen' not in fake_generator.speakers()

    def test_single_participant_sees_its_whole_dialogue(self, system, fake_generator):
        system.coordinator.collaborate(request('koru', max_rounds=3))

        histories = [[t.message for t in c['history']] for c in fake_generator.calls]
        assert histories == [[], ['koru reply 1'], ['koru reply 1', 'koru reply 2']]
        assert fake_generator.calls[1]['user_prompt'] == FOLLOW_UP_PROMPT

    def test_round_count_defaults_to_config(self, system, coordinator_config):
        result = system.coordinator.collaborate(request('abraham', 'solienne'))

        assert len(result.dialogue) == 2 * coordinator_config.max_rounds
        assert result.metadata['rounds'] == coordinator_config.max_rounds

    def test_invalid_requests(self, system):
        with pytest.raises(ValidationError):
            system.coordinator.collaborate(request('abraham', 'ghost'))
        with pytest.raises(ValidationError):
            system.coordinator.collaborate(request())
        with pytest.raises(ValidationError):
            system.coordinator.collaborate(request('abraham', max_rounds=0))


class TestOutcomeFeedback:

    def test_successful_dialogue_records(self, system):
        before = system.personality.get_traits('abraham')
        result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=2))

        for pid in ('abraham', 'solienne'):
            assert len(system.memory.query(pid, kind='conversation')) == 2
            collaboration = system.memory.query(pid, kind='collaboration')
            assert len(collaboration) == 1
            assert collaboration[0].metadata.success is True

        decision = system.memory.query('citizen', kind='decision')[0]
        assert decision.content['decision'] == 'synthesize_consensus'
        assert decision.metadata.success is True
        assert system.memory.get_patterns('citizen')[0].pattern_key == 'decision:synthesize_consensus'

        node = system.knowledge.get_node(result.metadata['knowledge_node_id'])
        assert node.type == 'insight'
        assert node.created_by == 'citizen'
        assert 'consensus' in node.tags
        assert node.content['consensus'] == result.consensus

        assert system.personality.get_traits('abraham').empathy > before.empathy

    def test_record_outcome_disabled(self, system):
        system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=1, record_outcome=False))

        assert system.memory.participants() == []
        assert system.knowledge.node_count() == 0


class TestFailures:

    def test_participant_failure_aborts_and_keeps_turns(self, system, fake_generator):
        def responder(speaker, prompt, index):
            if speaker == 'solienne':
                raise ConnectionError('model unavailable')
            return f'{speaker} reply'

        fake_generator.responder = responder
        before = system.personality.get_traits('solienne')

        result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=2))

        assert result.status == 'failed'
        assert [t.participant_id for t in result.dialogue] == ['abraham']
        assert result.consensus is None
        assert result.error['participant_id'] == 'solienne'
        assert result.error['attempts'] == 3
        assert result.error['type'] == 'CapabilityError'
        assert fake_generator.speakers() == ['abraham', 'solienne', 'solienne', 'solienne']

        assert system.personality.get_traits('solienne').confidence < before.confidence
        assert system.memory.query('solienne', kind='collaboration')[0].metadata.success is False
        assert system.knowledge.query(tags=['consensus']) == []

    def test_persistence_failure_keeps_completed_turns(self, system):
        store_append = system.memory.append
        conversations = []

        def flaky_append(record):
            if record.kind == 'conversation':
                conversations.append(record.participant_id)
                if len(conversations) == 2:
                    raise PersistenceError('disk full')
            return store_append(record)

        with patch.object(system.memory, 'append', side_effect=flaky_append):
            result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=2))

        assert result.status == 'failed'
        assert [t.participant_id for t in result.dialogue] == ['abraham']
        assert result.consensus is None
        assert result.error == {'type': 'PersistenceError', 'message': 'disk full', 'round': 0, 'turn_index': 1}
        assert [r.content['response'] for r in system.memory.query('abraham', kind='conversation')] == [
            result.dialogue[0].message
        ]
        assert system.memory.query('solienne', kind='conversation') == []
        assert system.memory.query('solienne', kind='collaboration')[0].metadata.success is False

    def test_transient_failure_is_retried(self, system, fake_generator):
        def responder(speaker, prompt, index):
            if index == 1:
                raise TimeoutError('slow start')
            return f'{speaker} reply {index}'

        fake_generator.responder = responder
        result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=2))

        assert result.status == 'done'
        assert len(result.dialogue) == 4
        assert len(fake_generator.calls) == 6

    def test_turn_deadline(self, system, fake_generator):
        release = threading.Event()

        def responder(speaker, prompt, index):
            if speaker == 'solienne':
                release.wait(2)
            return f'{speaker} reply'

        fake_generator.responder = responder
        try:
            result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=1, timeout=0.05))
        finally:
            release.set()

        assert result.status == 'failed'
        assert 'deadline' in result.error['message']
        assert len(result.dialogue) == 1

    def test_consensus_failure_leaves_consensus_unset(self, system, fake_generator):
        def responder(speaker, prompt, index):
            if is_consensus_prompt(prompt):
                raise ConnectionError('synthesizer down')
            return f'{speaker} reply'

        fake_generator.responder = responder
        result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=1))

        assert result.status == 'done'
        assert result.consensus is None
        assert 'consensus_error' in result.metadata
        assert system.memory.query('citizen', kind='decision')[0].metadata.success is False

    def test_cancellation_discards_in_flight_turn(self, system, fake_generator):
        cancel = threading.Event()

        def responder(speaker, prompt, index):
            if index == 2:
                cancel.set()
            return f'{speaker} reply'

        fake_generator.responder = responder
        result = system.coordinator.collaborate(request('abraham', 'solienne', max_rounds=2), cancel_event=cancel)

        assert result.status == 'cancelled'
        assert [t.participant_id for t in result.dialogue] == ['abraham']
        assert len(system.memory.query('solienne', kind='conversation')) == 0
        assert system.memory.query('abraham', kind='collaboration') == []


class TestConcurrency:

    def test_run_concurrently_keeps_request_order(self, system):
        topics = ['Carbon budgets', 'Toy design', 'Treasury policy']
        requests = [request('koru', 'citizen', topic=t, max_rounds=1) for t in topics]

        results = system.coordinator.run_concurrently(requests, max_workers=3)

        assert [r.metadata['topic'] for r in results] == topics
        assert all(r.status == 'done' for r in results)
        assert len(system.memory.query('koru', kind='conversation')) == 3

    def test_invoke_capability_fallback(self, system, fake_generator):
        fake_generator.responder = lambda speaker, prompt, index: '{"recommendation": "YES", "confidence": 0.7}'

        result = system.coordinator.invoke_capability('miyomi', 'analyze_market', {'market': 'Fidenza'})

        assert result == {'recommendation': 'YES', 'confidence': 0.7, 'provenance': 'fallback'}
