"""
Specialized workflows composed from participant capabilities and dialogues.
"""

import inspect
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional

from ..models.core import CollaborationRequest, CollaborationResult, MemoryMetadata, MemoryRecord, WorkflowResult
from ..models.errors import AgentMindError, NotFoundError, ValidationError
from ..utils.config import RoleConfig
from ..utils.json_utils import dumps_content
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import utc_now
from .coordinator import Coordinator
from .memory_store import MemoryStore

logger = get_logger(__name__)

STANDUP_PROMPT = 'What are you planning to work on today?'

# keyword -> participants that care about it, used to spot standup overlaps
COLLABORATION_KEYWORDS = {
    'art': ['abraham', 'solienne', 'sue'],
    'market': ['miyomi', 'bertha', 'bart'],
    'community': ['citizen', 'koru'],
    'education': ['geppetto', 'koru'],
    'sustainability': ['verdelis'],
}


def combine_market_insights(contrarian: Dict[str, Any], strategist: Dict[str, Any]) -> str:
    """Fixed decision table over the contrarian and strategist recommendations."""
    contrarian_rec = str(contrarian.get('recommendation') or 'SKIP').upper()
    strategist_rec = str(strategist.get('recommendation') or 'hold').lower()

    if contrarian_rec == 'YES' and strategist_rec in ('buy', 'strong_buy'):
        return 'STRONG OPPORTUNITY: Both contrarian and strategic analysis align bullish'
    if contrarian_rec == 'NO' and strategist_rec in ('sell', 'strong_sell'):
        return 'AVOID: Both analyses suggest bearish outlook'
    if contrarian_rec == 'SKIP' or strategist_rec == 'hold':
        return 'NEUTRAL: Insufficient edge or unclear opportunity'
    return 'DIVERGENT VIEWS: Contrarian and strategic analyses differ - proceed with caution'


def find_collaboration_opportunities(plans: Dict[str, str]) -> List[Dict[str, Any]]:
    """Group participants whose plans mention the same keyword."""
    opportunities = []
    for keyword in COLLABORATION_KEYWORDS:
        interested = [pid for pid, plan in plans.items() if keyword in plan.lower()]
        if len(interested) >= 2:
            opportunities.append({'participants': interested, 'opportunity': f'Collaborate on {keyword}-related work'})
    return opportunities


class WorkflowService:
    """Named compositions of capabilities, dialogues and rule-based verdicts."""

    def __init__(self, coordinator: Coordinator, roles: Optional[RoleConfig] = None, max_workers: Optional[int] = None):
        if roles is None:
            from ..utils.config import config as app_config
            roles = app_config.roles
        self.coordinator = coordinator
        self.roles = roles
        self.max_workers = max_workers or coordinator.config.max_workers

        self.workflows: Dict[str, Callable[..., WorkflowResult]] = {
            'market_analysis': self.market_analysis,
            'creative_collaboration': self.creative_collaboration,
            'community_proposal': self.community_proposal,
            'eco_curation': self.eco_curation,
            'educational_design': self.educational_design,
            'ecosystem_discussion': self.ecosystem_discussion,
            'creative_collective': self.creative_collective,
            'daily_standup': self.daily_standup,
        }

    @property
    def memory(self) -> MemoryStore:
        return self.coordinator.memory

    @property
    def knowledge(self):
        return self.coordinator.knowledge

    def names(self) -> List[str]:
        return sorted(self.workflows)

    def run(self, name: str, params: Optional[Dict[str, Any]] = None) -> WorkflowResult:
        """Run a workflow by name.

        Raises:
            NotFoundError: If no workflow has that name
            ValidationError: If params do not match the workflow's arguments
        """
        workflow = self.workflows.get(name)
        if workflow is None:
            raise NotFoundError(f'Unknown workflow: {name}')
        params = params or {}
        try:
            inspect.signature(workflow).bind(**params)
        except TypeError as e:
            raise ValidationError(f'Invalid parameters for {name}: {e}')
        return workflow(**params)

    def market_analysis(self, asset: Dict[str, Any]) -> WorkflowResult:
        """Contrarian and strategist analyses folded through the decision table.

        Raises:
            ValidationError: If asset is not a mapping or two analysts are not configured
        """
        if not isinstance(asset, dict):
            raise ValidationError(f'asset must be a mapping, got {type(asset).__name__}')
        if len(self.roles.market_analysts) < 2:
            raise ValidationError('market_analysis needs two market analysts')
        contrarian, strategist = self.roles.market_analysts[:2]

        def steps(result: WorkflowResult) -> None:
            market = f"{asset.get('collection', '')} - {asset.get('name', '')}".strip(' -')
            contrarian_view = self._invoke(result, contrarian, 'analyze_market',
                                           {'market': market, 'current_price': asset.get('current_price')})
            strategist_view = self._invoke(result, strategist, 'analyze_opportunity', asset)

            for pid, view in ((contrarian, contrarian_view), (strategist, strategist_view)):
                result.knowledge_nodes.append(
                    self.knowledge.add_node(type='market',
                                            content={'asset': asset, 'analysis': view},
                                            created_by=pid,
                                            confidence=_confidence(view, 0.6),
                                            tags=['market', *_asset_tags(asset)]))

            recommendation = combine_market_insights(contrarian_view, strategist_view)
            result.outputs.append({'participant_id': 'coordinator', 'type': 'recommendation', 'data': recommendation})
            result.metadata['combined_recommendation'] = recommendation

        return self._execute('market_analysis', steps, asset=asset)

    def creative_collaboration(self, theme: str) -> WorkflowResult:
        """Creator concept plus a reflective layer, then a two-round dialogue."""
        creator = self.roles.creator

        def steps(result: WorkflowResult) -> None:
            concept = self._invoke(result, creator, 'generate_concept', {'theme': theme, 'count': 3})
            reflection = self._invoke(result, 'solienne', 'generate_reflection', {'theme': theme})
            self._discuss(result, [creator, 'solienne'], f'Creating a collaborative piece on {theme}',
                          {f"{creator}'s concept": concept, "solienne's reflection": reflection})

        return self._execute('creative_collaboration', steps, theme=theme)

    def community_proposal(self, proposal_type: str, context: str) -> WorkflowResult:
        def steps(result: WorkflowResult) -> None:
            proposal = self._invoke(result, 'citizen', 'generate_proposal', {'type': proposal_type, 'context': context})
            event = self._invoke(result, 'koru', 'design_event', {
                'purpose': f"Discuss and build consensus around: {proposal.get('title', proposal_type)}",
                'context': context
            })
            result.knowledge_nodes.append(
                self.knowledge.add_node(type='proposal', content=proposal, created_by='citizen', confidence=0.7,
                                        tags=['proposal', proposal_type]))
            self._discuss(result, ['citizen', 'koru'], 'Implementation strategy for community proposal',
                          {'Proposal': proposal, 'Event': event},
                          fallback='See dialogue for detailed implementation')

        return self._execute('community_proposal', steps, proposal_type=proposal_type, context=context)

    def eco_curation(self, theme: str) -> WorkflowResult:
        curator = self.roles.curator

        def steps(result: WorkflowResult) -> None:
            work = self._invoke(result, 'verdelis', 'create_work',
                                {'theme': theme, 'medium': 'digital', 'sustainability_target': 95})
            curation = self._invoke(result, curator, 'curate', {
                'theme': f'Sustainable Futures: {theme}',
                'works': [work],
                'context': 'Environmental consciousness in digital art'
            })
            self._discuss(result, [curator, 'verdelis'], f'Exhibition planning for "{theme}"',
                          {'Eco-work': work, 'Curation': curation})

        return self._execute('eco_curation', steps, theme=theme)

    def educational_design(self, concept: str) -> WorkflowResult:
        def steps(result: WorkflowResult) -> None:
            design = self._invoke(result, 'geppetto', 'design_learning_object', {
                'concept': concept,
                'age_range': '8-12',
                'learning_objectives': ['creativity', 'problem-solving', 'collaboration']
            })
            lending = self._invoke(result, 'bart', 'evaluate_collateral', {
                'collection_name': f'Educational object: {concept}',
                'floor_price': 0.5,
                'requested_amount': 0.3,
                'duration': '30 days'
            })
            self._discuss(result, ['geppetto', 'bart'], 'Educational object as collateral asset',
                          {'Design': design, 'Lending': lending},
                          fallback='See dialogue for detailed strategy')

        return self._execute('educational_design', steps, concept=concept)

    def ecosystem_discussion(self, topic: str) -> WorkflowResult:
        """Every registered participant speaks once."""
        def steps(result: WorkflowResult) -> None:
            self._discuss(result, self.coordinator.registry.ids(), topic, None, max_rounds=1)

        return self._execute('ecosystem_discussion', steps, topic=topic)

    def creative_collective(self, theme: str) -> WorkflowResult:
        """Three creative capabilities fanned out concurrently, then a joint dialogue."""
        members = [(self.roles.creator, 'generate_concept', 'artifact', 0.9, ['conceptual', 'series']),
                   ('solienne', 'generate_reflection', 'insight', 0.85, ['consciousness', 'digital']),
                   ('geppetto', 'design_learning_object', 'insight', 0.88, ['education', 'interactive'])]

        def steps(result: WorkflowResult) -> None:
            payload = {'theme': theme}
            outputs = self._fan_out({pid: (lambda pid=pid, cap=cap: self.coordinator.invoke_capability(pid, cap, payload))
                                     for pid, cap, _, _, _ in members})
            for pid, capability, node_type, confidence, tags in members:
                data = outputs[pid]
                result.outputs.append({'participant_id': pid, 'type': capability, 'data': data})
                result.knowledge_nodes.append(
                    self.knowledge.add_node(type=node_type, content=data, created_by=pid, confidence=confidence,
                                            tags=[theme, *tags]))

            participants = [pid for pid, _, _, _, _ in members]
            self._discuss(result, participants,
                          f'Creating a unified consciousness-exploring educational artwork on {theme}',
                          {pid: outputs[pid] for pid in participants})

        return self._execute('creative_collective', steps, theme=theme)

    def daily_standup(self) -> WorkflowResult:
        """Every participant shares a plan concurrently; overlaps become opportunities."""
        participants = self.coordinator.registry.ids()
        today = utc_now().date().isoformat()

        def share_plan(participant_id: str) -> str:
            plan = self.coordinator.call_participant(participant_id, STANDUP_PROMPT)
            # Each worker writes through its own store handle
            store = MemoryStore(config=self.memory.config, storage_dir=str(self.memory.storage_dir))
            store.append(MemoryRecord(participant_id=participant_id,
                                      kind='conversation',
                                      content={'message': 'Daily standup', 'response': plan, 'context': 'daily_planning'},
                                      metadata=MemoryMetadata(tags=['daily', today])))
            return plan

        def steps(result: WorkflowResult) -> None:
            try:
                shared = self._fan_out({pid: (lambda pid=pid: share_plan(pid)) for pid in participants})
            finally:
                for pid in participants:
                    self.memory.invalidate(pid)

            plans = {pid: shared[pid] for pid in participants}
            for pid in participants:
                result.outputs.append({'participant_id': pid, 'type': 'daily_plan', 'data': plans[pid]})
                result.knowledge_nodes.append(
                    self.knowledge.add_node(type='insight', content={'type': 'daily_plan', 'plan': plans[pid]},
                                            created_by=pid, confidence=0.8, tags=['daily', 'planning', today]))
            result.memories_created = len(participants)

            opportunities = find_collaboration_opportunities(plans)
            result.outputs.append({'participant_id': 'coordinator', 'type': 'collaboration_opportunities',
                                   'data': opportunities})
            result.metadata['collaborations'] = opportunities

        return self._execute('daily_standup', steps, date=today)

    def _execute(self, name: str, steps: Callable[[WorkflowResult], None], **metadata) -> WorkflowResult:
        started = time.monotonic()
        result = WorkflowResult(workflow=name, status='running', metadata=dict(metadata))
        logger.info(f'Running workflow {name}')
        try:
            steps(result)
            dialogue = result.output('collective', 'dialogue')
            result.status = 'failed' if dialogue is not None and not dialogue.succeeded else 'completed'
        except AgentMindError as e:
            logger.error(f'Workflow {name} failed: {e}')
            result.status = 'failed'
            result.metadata['error'] = e.to_dict()
        result.duration = time.monotonic() - started
        return result

    def _invoke(self, result: WorkflowResult, participant_id: str, capability: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        output = self.coordinator.invoke_capability(participant_id, capability, payload)
        result.outputs.append({'participant_id': participant_id, 'type': capability, 'data': output})
        return output

    def _discuss(self,
                 result: WorkflowResult,
                 participants: List[str],
                 topic: str,
                 seeds: Optional[Dict[str, Any]],
                 max_rounds: int = 2,
                 fallback: Optional[str] = None) -> CollaborationResult:
        context = None
        if seeds:
            context = '\n'.join(f'{label}: {_summarize(value)}' for label, value in seeds.items())
        dialogue = self.coordinator.collaborate(
            CollaborationRequest(participants=participants, topic=topic, context=context, max_rounds=max_rounds))
        result.outputs.append({'participant_id': 'collective', 'type': 'dialogue', 'data': dialogue})
        result.memories_created += len(dialogue.dialogue) + len(participants)
        result.metadata['synthesis'] = dialogue.consensus or fallback or dialogue.last_message()
        if dialogue.error:
            result.metadata['error'] = dialogue.error
        return dialogue

    def _fan_out(self, calls: Dict[str, Callable[[], Any]]) -> Dict[str, Any]:
        """Run calls on a bounded pool; the first failure is re-raised after all settle."""
        results: Dict[str, Any] = {}
        errors: List[AgentMindError] = []
        workers = max(1, min(self.max_workers, len(calls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='workflow') as executor:
            futures = {executor.submit(call): key for key, call in calls.items()}
            for future in as_completed(futures):
                key = futures[future]
                try:
                    results[key] = future.result()
                except AgentMindError as e:
                    logger.warning(f'Fan-out call for {key} failed: {e}')
                    errors.append(e)
        if errors:
            raise errors[0]
        return results


def _summarize(value: Any, limit: int = 500) -> str:
    text = value if isinstance(value, str) else dumps_content(value)
    return text[:limit]


def _confidence(view: Dict[str, Any], default: float) -> float:
    try:
        value = float(view.get('confidence', default))
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, value))


def _asset_tags(asset: Dict[str, Any]) -> List[str]:
    return [str(asset[k]).lower() for k in ('collection', 'platform') if asset.get(k)]
