"""
Tests for the per-participant memory store.
"""

import time
from dataclasses import replace
from datetime import timedelta

import pytest

from agentmind.models.core import MemoryMetadata, MemoryRecord
from agentmind.models.errors import PersistenceError, ValidationError
from agentmind.services.memory_store import MemoryStore
from agentmind.utils.timestamp_utils import utc_now


def decision(participant_id, name, success):
    return MemoryRecord(participant_id=participant_id,
                        kind='decision',
                        content={'decision': name, 'reasoning': 'test'},
                        metadata=MemoryMetadata(success=success))


class TestAppend:

    def test_assigns_id_and_timestamp(self, memory_store):
        record_id = memory_store.append(MemoryRecord(participant_id='abraham', kind='creation', content={'title': 'x'}))

        stored = memory_store.query('abraham')
        assert len(stored) == 1
        assert stored[0].id == record_id
        assert record_id.startswith('mem_')
        assert stored[0].timestamp is not None

    def test_unknown_kind_rejected_without_side_effects(self, memory_store):
        with pytest.raises(ValidationError):
            memory_store.append(MemoryRecord(participant_id='abraham', kind='gossip'))
        assert memory_store.query('abraham') == []

    def test_missing_participant_rejected(self, memory_store):
        with pytest.raises(ValidationError):
            memory_store.append(MemoryRecord(participant_id='', kind='creation'))

    def test_confidence_out_of_range_rejected(self, memory_store):
        with pytest.raises(ValidationError):
            memory_store.append(MemoryRecord(participant_id='sue', kind='decision',
                                             metadata=MemoryMetadata(confidence=1.5)))

    def test_cap_evicts_oldest(self, memory_config):
        store = MemoryStore(replace(memory_config, max_records_per_participant=3))
        for i in range(5):
            store.append(MemoryRecord(participant_id='koru', kind='conversation', content={'n': i}))

        kept = [r.content['n'] for r in store.query('koru')]
        assert kept == [2, 3, 4]

    def test_persists_across_instances(self, memory_store, memory_config):
        memory_store.append(MemoryRecord(participant_id='sue', kind='creation', content={'title': 'Salon'}))

        reopened = MemoryStore(memory_config)
        assert [r.content['title'] for r in reopened.query('sue')] == ['Salon']
        assert 'sue' in reopened.participants()


class TestPatterns:

    def test_success_rate_running_average(self, memory_store):
        memory_store.append(decision('miyomi', 'buy', True))
        memory_store.append(decision('miyomi', 'buy', True))
        memory_store.append(decision('miyomi', 'buy', False))

        patterns = memory_store.get_patterns('miyomi')
        assert len(patterns) == 1
        assert patterns[0].pattern_key == 'decision:buy'
        assert patterns[0].frequency == 3
        assert patterns[0].success_rate == pytest.approx(2 / 3)
        assert len(patterns[0].examples) == 3

    @pytest.mark.parametrize('outcomes', [
        [True],
        [False, False, False],
        [True, False, True, False, True],
        [False, True, True, True],
        [True, True, False, False, False, True, False],
    ])
    def test_success_rate_matches_ratio_for_any_interleaving(self, memory_store, outcomes):
        # Interleave a second decision label so each key sees only its own outcomes
        for i, success in enumerate(outcomes):
            memory_store.append(decision('bertha', 'buy', success))
            memory_store.append(decision('bertha', 'sell', i % 2 == 0))

        patterns = {p.pattern_key: p for p in memory_store.get_patterns('bertha')}
        assert patterns['decision:buy'].frequency == len(outcomes)
        assert patterns['decision:buy'].success_rate == pytest.approx(sum(outcomes) / len(outcomes))
        sells = [i % 2 == 0 for i in range(len(outcomes))]
        assert patterns['decision:sell'].success_rate == pytest.approx(sum(sells) / len(sells))

    def test_decision_without_success_flag_is_not_mined(self, memory_store):
        memory_store.append(decision('miyomi', 'hold', None))
        assert memory_store.get_patterns('miyomi') == []

    def test_patterns_ordered_by_frequency(self, memory_store):
        memory_store.append(decision('bertha', 'sell', True))
        for _ in range(2):
            memory_store.append(decision('bertha', 'buy', False))

        assert [p.pattern_key for p in memory_store.get_patterns('bertha')] == ['decision:buy', 'decision:sell']

    def test_summary(self, memory_store):
        memory_store.append(decision('bart', 'lend', True))
        memory_store.append(decision('bart', 'lend', False))
        memory_store.append(decision('bart', 'decline', True))
        memory_store.append(MemoryRecord(participant_id='bart', kind='conversation', content={'message': 'hi'}))

        summary = memory_store.summarize('bart')
        assert summary.total_count == 4
        assert summary.counts_by_kind == {'decision': 3, 'conversation': 1}
        assert summary.success_rate == pytest.approx(2 / 3)
        assert summary.top_patterns[0].pattern_key == 'decision:lend'


class TestQuery:

    def test_filters_and_limit(self, memory_store):
        memory_store.append(MemoryRecord(participant_id='sue', kind='creation', content={'n': 1},
                                         metadata=MemoryMetadata(tags=['exhibition'])))
        memory_store.append(MemoryRecord(participant_id='sue', kind='conversation', content={'n': 2}))
        memory_store.append(MemoryRecord(participant_id='sue', kind='creation', content={'n': 3}))

        assert [r.content['n'] for r in memory_store.query('sue', kind='creation')] == [1, 3]
        assert [r.content['n'] for r in memory_store.query('sue', tags=['exhibition'])] == [1]
        assert [r.content['n'] for r in memory_store.query('sue', limit=2)] == [2, 3]

    def test_time_window(self, memory_store):
        now = utc_now()
        memory_store.append(MemoryRecord(participant_id='sue', kind='creation', content={'n': 1},
                                         timestamp=now - timedelta(days=3)))
        memory_store.append(MemoryRecord(participant_id='sue', kind='creation', content={'n': 2}, timestamp=now))

        recent = memory_store.query('sue', start=now - timedelta(days=1))
        assert [r.content['n'] for r in recent] == [2]

    def test_find_similar_ranks_by_keyword_overlap(self, memory_store):
        memory_store.append(MemoryRecord(participant_id='verdelis', kind='creation',
                                         content={'title': 'Carbon forest', 'medium': 'digital'}))
        memory_store.append(MemoryRecord(participant_id='verdelis', kind='creation',
                                         content={'title': 'Ocean study'}))
        memory_store.append(MemoryRecord(participant_id='verdelis', kind='creation',
                                         content={'title': 'Digital carbon garden'}))

        similar = memory_store.find_similar('verdelis', 'digital carbon')
        assert [r.content['title'] for r in similar] == ['Digital carbon garden', 'Carbon forest']

    def test_find_similar_ties_go_to_most_recent(self, memory_store):
        now = utc_now()
        for title, age_days in [('Carbon ledger', 3), ('Carbon audit', 1), ('Carbon map', 2), ('Ocean study', 0)]:
            memory_store.append(MemoryRecord(participant_id='verdelis', kind='creation', content={'title': title},
                                             timestamp=now - timedelta(days=age_days)))

        similar = memory_store.find_similar('verdelis', 'carbon')
        assert [r.content['title'] for r in similar] == ['Carbon audit', 'Carbon map', 'Carbon ledger']
        assert [r.content['title'] for r in memory_store.find_similar('verdelis', 'carbon', limit=1)] == ['Carbon audit']

    def test_unknown_participant_is_empty(self, memory_store):
        assert memory_store.query('nobody') == []
        assert memory_store.summarize('nobody').success_rate == 0.0


class TestRetention:

    def test_prune_removes_expired(self, memory_store):
        now = utc_now()
        memory_store.append(MemoryRecord(participant_id='citizen', kind='conversation', content={'n': 'old'},
                                         timestamp=now - timedelta(days=120)))
        memory_store.append(MemoryRecord(participant_id='citizen', kind='conversation', content={'n': 'new'},
                                         timestamp=now))

        assert memory_store.prune('citizen', now=now) == 1
        assert [r.content['n'] for r in memory_store.query('citizen')] == ['new']
        assert memory_store.prune_all(now=now) == {'citizen': 0}

    def test_scheduled_cleanup_prunes_expired(self, memory_store):
        memory_store.append(MemoryRecord(participant_id='citizen', kind='conversation', content={'n': 'old'},
                                         timestamp=utc_now() - timedelta(days=120)))
        memory_store.append(MemoryRecord(participant_id='citizen', kind='conversation', content={'n': 'new'}))

        thread = memory_store.start_cleanup(interval_hours=1)
        try:
            assert memory_store.start_cleanup() is thread
            deadline = time.monotonic() + 5
            while memory_store.count('citizen') > 1 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            memory_store.stop_cleanup(timeout=5)

        assert [r.content['n'] for r in memory_store.query('citizen')] == ['new']
        assert not thread.is_alive()

    def test_share_copies_with_provenance_tags(self, memory_store):
        record_id = memory_store.append(MemoryRecord(participant_id='sue', kind='creation', content={'title': 'Salon'}))

        shared_id = memory_store.share('sue', 'abraham', record_id)

        copy = memory_store.query('abraham')[0]
        assert copy.id == shared_id
        assert copy.content == {'title': 'Salon'}
        assert 'shared_from_sue' in copy.metadata.tags
        assert any(t.startswith('shared_at_') for t in copy.metadata.tags)

    def test_share_missing_record_is_noop(self, memory_store):
        assert memory_store.share('sue', 'abraham', 'mem_missing') is None
        assert memory_store.query('abraham') == []

    def test_corrupt_log_raises(self, memory_store, memory_config):
        path = memory_store.storage_dir / 'sue-memory.json'
        path.write_text('{not json', encoding='utf-8')

        with pytest.raises(PersistenceError):
            MemoryStore(memory_config).query('sue')
