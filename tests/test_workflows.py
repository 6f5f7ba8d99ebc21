"""
Tests for specialized workflows and the market decision table.
"""

import json

import pytest

from agentmind.models.errors import NotFoundError, ValidationError
from agentmind.services.workflows import combine_market_insights, find_collaboration_opportunities


@pytest.mark.parametrize('contrarian, strategist, expected', [
    ('YES', 'buy', 'STRONG OPPORTUNITY'),
    ('YES', 'strong_buy', 'STRONG OPPORTUNITY'),
    ('NO', 'strong_sell', 'AVOID'),
    ('SKIP', 'buy', 'NEUTRAL'),
    ('YES', 'hold', 'NEUTRAL'),
    (None, None, 'NEUTRAL'),
    ('YES', 'sell', 'DIVERGENT VIEWS'),
    ('NO', 'buy', 'DIVERGENT VIEWS'),
])
def test_combine_market_insights(contrarian, strategist, expected):
    verdict = combine_market_insights({'recommendation': contrarian}, {'recommendation': strategist})
    assert verdict.startswith(expected)


def test_collaboration_opportunities_need_two_participants():
    plans = {
        'miyomi': 'Scanning the market for mispriced art',
        'bertha': 'Rebalancing after the market dip',
        'verdelis': 'Sustainability audit',
    }
    opportunities = find_collaboration_opportunities(plans)

    assert opportunities == [{'participants': ['miyomi', 'bertha'], 'opportunity': 'Collaborate on market-related work'}]


def json_responder(payloads):
    """Reply with JSON for capability prompts, plain text otherwise."""
    def responder(speaker, prompt, index):
        for marker, payload in payloads.items():
            if prompt.startswith(marker):
                return json.dumps(payload)
        return f'{speaker} reply {index}'
    return responder


class TestMarketAnalysis:

    def test_registered_capabilities_drive_verdict(self, system):
        system.registry.get('miyomi').capabilities['analyze_market'] = lambda payload: {'recommendation': 'YES',
                                                                                       'confidence': 0.9}
        system.registry.get('bertha').capabilities['analyze_opportunity'] = lambda payload: {'recommendation': 'buy'}

        result = system.workflows.market_analysis({'name': 'Fidenza #1', 'collection': 'Fidenza', 'current_price': 120})

        assert result.status == 'completed'
        assert result.metadata['combined_recommendation'].startswith('STRONG OPPORTUNITY')
        assert result.output('miyomi', 'analyze_market')['provenance'] == 'capability'

        contrarian_node, strategist_node = (system.knowledge.get_node(n) for n in result.knowledge_nodes)
        assert contrarian_node.confidence == 0.9
        assert strategist_node.relations[contrarian_node.id] == 'market_correlation'

    def test_fallback_prompts_are_marked(self, system, fake_generator):
        fake_generator.responder = json_responder({
            'Analyze this market': {'recommendation': 'NO'},
            'Evaluate this asset': {'recommendation': 'strong_sell'},
        })

        result = system.workflows.market_analysis({'name': 'Squiggle', 'collection': 'Chromie'})

        assert result.metadata['combined_recommendation'].startswith('AVOID')
        assert result.output('bertha', 'analyze_opportunity')['provenance'] == 'fallback'

    def test_capability_failure_marks_workflow_failed(self, system, fake_generator):
        def responder(speaker, prompt, index):
            raise ConnectionError('down')

        fake_generator.responder = responder
        result = system.workflows.market_analysis({'name': 'Squiggle'})

        assert result.status == 'failed'
        assert result.metadata['error']['participant_id'] == 'miyomi'


class TestCollaborativeWorkflows:

    def test_creative_collaboration(self, system, fake_generator):
        fake_generator.responder = json_responder({
            'Develop a conceptual framework': {'title': 'Covenant', 'themes': ['light']},
            'Offer a reflective layer': {'reflection': 'awareness'},
        })

        result = system.workflows.creative_collaboration('light')

        assert result.status == 'completed'
        dialogue = result.output('collective', 'dialogue')
        assert [t.participant_id for t in dialogue.dialogue] == ['abraham', 'solienne', 'abraham', 'solienne']
        assert result.metadata['synthesis'] == dialogue.consensus
        first_prompt = next(c['user_prompt'] for c in fake_generator.calls if 'Topic:' in c['user_prompt'])
        assert '"title": "Covenant"' in first_prompt

    def test_community_proposal_stores_proposal(self, system, fake_generator):
        fake_generator.responder = json_responder({
            'Draft a governance proposal': {'title': 'Open treasury'},
            'Design a community event': {'name': 'Town hall'},
        })

        result = system.workflows.community_proposal('treasury', 'Quarterly budget')

        assert result.status == 'completed'
        proposal = system.knowledge.get_node(result.knowledge_nodes[0])
        assert proposal.type == 'proposal'
        assert proposal.content['title'] == 'Open treasury'
        assert result.output('koru', 'design_event') == {'name': 'Town hall', 'provenance': 'fallback'}

    def test_eco_curation_and_educational_design(self, system):
        assert system.workflows.eco_curation('rewilding').status == 'completed'
        result = system.workflows.educational_design('fractions')
        assert result.status == 'completed'
        assert result.output('bart', 'evaluate_collateral')['provenance'] == 'fallback'

    def test_ecosystem_discussion_one_round_everyone(self, system):
        result = system.workflows.ecosystem_discussion('Shared treasury')

        dialogue = result.output('collective', 'dialogue')
        assert [t.participant_id for t in dialogue.dialogue] == system.registry.ids()
        assert dialogue.consensus

    def test_creative_collective_fans_out(self, system):
        result = system.workflows.creative_collective('memory')

        assert result.status == 'completed'
        assert len(result.knowledge_nodes) == 3
        creators = {system.knowledge.get_node(n).created_by for n in result.knowledge_nodes}
        assert creators == {'abraham', 'solienne', 'geppetto'}

    def test_daily_standup(self, system, fake_generator):
        plans = {
            'miyomi': 'Reading the market tea leaves',
            'bertha': 'Market valuation review',
        }
        fake_generator.responder = lambda speaker, prompt, index: plans.get(speaker, f'{speaker} quiet day')

        result = system.workflows.daily_standup()

        assert result.status == 'completed'
        assert result.memories_created == len(system.registry)
        assert len(result.knowledge_nodes) == len(system.registry)
        assert result.metadata['collaborations'] == [
            {'participants': ['miyomi', 'bertha'], 'opportunity': 'Collaborate on market-related work'}
        ]
        # Shared handle sees what the worker handles wrote
        standup = system.memory.query('miyomi', kind='conversation')
        assert standup[-1].content['response'] == plans['miyomi']


class TestRegistry:

    def test_run_by_name(self, system):
        result = system.workflows.run('ecosystem_discussion', {'topic': 'Commons'})
        assert result.workflow == 'ecosystem_discussion'

    def test_unknown_workflow(self, system):
        with pytest.raises(NotFoundError):
            system.workflows.run('world_domination', {})

    def test_bad_params(self, system):
        with pytest.raises(ValidationError):
            system.workflows.run('eco_curation', {'colour': 'green'})

    def test_market_analysis_needs_asset_mapping(self, system, fake_generator):
        with pytest.raises(ValidationError):
            system.workflows.run('market_analysis', {'asset': 'Fidenza #1'})
        assert fake_generator.calls == []
