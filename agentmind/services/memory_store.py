"""
Memory Store: per-participant append-only memory logs with pattern mining.
"""

import threading
import uuid
from collections import Counter, deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..models.core import MEMORY_KINDS, LearningPattern, MemoryMetadata, MemoryRecord, MemorySummary
from ..models.errors import PersistenceError, ValidationError
from ..utils.config import MemoryConfig
from ..utils.file_store import read_document, write_document
from ..utils.json_utils import dumps_content
from ..utils.logging_config import get_logger
from ..utils.text_utils import tokenize
from ..utils.timestamp_utils import ensure_utc, utc_now

logger = get_logger(__name__)

MEMORY_SUFFIX = '-memory.json'
PATTERNS_SUFFIX = '-patterns.json'


class MemoryStore:
    """Append-only memory logs, one partition per participant.

    Each partition is loaded lazily from two JSON documents
    (<participant>-memory.json, <participant>-patterns.json) and written back
    atomically after every mutation. Records are evicted oldest first, either
    when the per-participant cap is exceeded or when prune() finds them past
    the retention window.
    """

    def __init__(self, config: Optional[MemoryConfig] = None, storage_dir: Optional[str] = None):
        """Initialize the memory store.

        Args:
            config: MemoryConfig instance, uses default if None
            storage_dir: Overrides config.storage_dir
        """
        if config is None:
            from ..utils.config import config as app_config
            config = app_config.memory
        self.config = config
        self.storage_dir = Path(storage_dir or config.storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        self._records: Dict[str, List[MemoryRecord]] = {}
        self._patterns: Dict[str, Dict[str, LearningPattern]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._cleanup_thread: Optional[threading.Thread] = None
        self._cleanup_stop = threading.Event()

        logger.info(f'Initialized MemoryStore at {self.storage_dir}')

    def append(self, record: MemoryRecord) -> str:
        """Append a record to its participant's log.

        Args:
            record: Record to store; id and timestamp are assigned when missing

        Returns:
            The record id

        Raises:
            ValidationError: If participant_id or kind is missing or unknown
            PersistenceError: If the log cannot be written
        """
        self._validate(record)
        if record.id is None:
            record.id = f'mem_{uuid.uuid4().hex}'
        record.timestamp = ensure_utc(record.timestamp) if record.timestamp else utc_now()

        with self._lock(record.participant_id):
            records = self._load_records(record.participant_id)
            patterns = self._load_patterns(record.participant_id)

            updated_records = records + [record]
            overflow = len(updated_records) - self.config.max_records_per_participant
            if overflow > 0:
                updated_records = updated_records[overflow:]
                logger.debug(f'Evicted {overflow} oldest memories for {record.participant_id}')

            updated_patterns = patterns
            if record.kind == 'decision' and record.metadata.success is not None:
                updated_patterns = self._extract_pattern(patterns, record)

            # Persist first so a failed write leaves the in-memory view untouched
            self._flush(record.participant_id, updated_records, updated_patterns)
            self._records[record.participant_id] = updated_records
            self._patterns[record.participant_id] = updated_patterns

        logger.debug(f'Stored {record.kind} memory {record.id} for {record.participant_id}')
        return record.id

    def query(self,
              participant_id: str,
              kind: Optional[str] = None,
              start: Optional[datetime] = None,
              end: Optional[datetime] = None,
              tags: Optional[Iterable[str]] = None,
              limit: Optional[int] = None) -> List[MemoryRecord]:
        """Retrieve a participant's memories, oldest first.

        Args:
            participant_id: Owner of the log
            kind: Only records of this kind
            start: Only records at or after this time
            end: Only records at or before this time
            tags: Only records carrying at least one of these tags
            limit: Keep the most recent N records after filtering

        Returns:
            Matching records in chronological order
        """
        with self._lock(participant_id):
            records = list(self._load_records(participant_id))

        if kind:
            records = [r for r in records if r.kind == kind]
        if start:
            start = ensure_utc(start)
            records = [r for r in records if r.timestamp >= start]
        if end:
            end = ensure_utc(end)
            records = [r for r in records if r.timestamp <= end]
        if tags:
            wanted = set(tags)
            records = [r for r in records if wanted.intersection(r.metadata.tags)]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []

        return records

    def find_similar(self, participant_id: str, query_text: str, limit: int = 5) -> List[MemoryRecord]:
        """Rank memories by keyword overlap with query_text.

        The score is the number of distinct query tokens found in the record's
        serialized content. Ties go to the more recent record and zero scores
        are dropped.
        """
        query_tokens = tokenize(query_text)
        if not query_tokens:
            return []

        records = self.query(participant_id)
        scored = []
        for position, record in enumerate(records):
            content = dumps_content(record.content).lower()
            score = sum(1 for token in query_tokens if token in content)
            if score > 0:
                scored.append((score, position, record))

        scored.sort(key=lambda item: (item[0], item[2].timestamp, item[1]), reverse=True)
        return [record for _, _, record in scored[:limit]]

    def get_patterns(self, participant_id: str) -> List[LearningPattern]:
        """Learned patterns for a participant, most frequent first."""
        with self._lock(participant_id):
            patterns = list(self._load_patterns(participant_id).values())
        return sorted(patterns, key=lambda p: p.frequency, reverse=True)

    def summarize(self, participant_id: str) -> MemorySummary:
        """Build the learning summary for a participant."""
        records = self.query(participant_id)
        patterns = self.get_patterns(participant_id)

        counts_by_kind = dict(Counter(r.kind for r in records))
        decisions = [r for r in records if r.kind == 'decision']
        successful = sum(1 for r in decisions if r.metadata.success is True)
        success_rate = successful / len(decisions) if decisions else 0.0

        return MemorySummary(participant_id=participant_id,
                             total_count=len(records),
                             counts_by_kind=counts_by_kind,
                             top_patterns=patterns[:5],
                             recent_activity=records[-10:],
                             success_rate=success_rate)

    def prune(self, participant_id: str, now: Optional[datetime] = None) -> int:
        """Remove memories older than the retention window.

        Args:
            participant_id: Owner of the log
            now: Reference time (optional, uses current time if None)

        Returns:
            Number of memories removed
        """
        cutoff = ensure_utc(now or utc_now()) - timedelta(days=self.config.retention_days)

        with self._lock(participant_id):
            records = self._load_records(participant_id)
            kept = [r for r in records if r.timestamp > cutoff]
            pruned_count = len(records) - len(kept)
            if pruned_count > 0:
                self._flush(participant_id, kept, self._load_patterns(participant_id))
                self._records[participant_id] = kept

        if pruned_count > 0:
            logger.info(f'Pruned {pruned_count} expired memories for {participant_id}')
        else:
            logger.debug(f'No expired memories found for {participant_id}')
        return pruned_count

    def prune_all(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Prune every known participant; returns removed counts by participant."""
        return {pid: self.prune(pid, now=now) for pid in self.participants()}

    def start_cleanup(self, interval_hours: Optional[float] = None) -> threading.Thread:
        """Run prune_all now and then every interval on a daemon thread.

        Args:
            interval_hours: Hours between runs, uses config.cleanup_interval_hours if None

        Returns:
            The cleanup thread; calling again while it runs returns the same thread
        """
        with self._locks_guard:
            if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
                return self._cleanup_thread
            interval = (interval_hours or self.config.cleanup_interval_hours) * 3600
            self._cleanup_stop = threading.Event()
            self._cleanup_thread = threading.Thread(target=self._cleanup_loop,
                                                    args=(interval, self._cleanup_stop),
                                                    name='memory-cleanup',
                                                    daemon=True)
            self._cleanup_thread.start()
        logger.info(f'Scheduled memory cleanup every {interval / 3600:g} hours')
        return self._cleanup_thread

    def stop_cleanup(self, timeout: Optional[float] = None) -> None:
        self._cleanup_stop.set()
        thread = self._cleanup_thread
        if thread is not None:
            thread.join(timeout)

    def _cleanup_loop(self, interval: float, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                removed = sum(self.prune_all().values())
                logger.debug(f'Scheduled cleanup removed {removed} memories')
            except PersistenceError as e:
                logger.error(f'Scheduled memory cleanup failed: {e}')
            stop.wait(interval)

    def share(self, from_id: str, to_id: str, record_id: str) -> Optional[str]:
        """Copy one of from_id's memories into to_id's log.

        Returns:
            The new record id, or None when record_id is not in from_id's log
        """
        source = next((r for r in self.query(from_id) if r.id == record_id), None)
        if source is None:
            logger.warning(f'Memory {record_id} not found for {from_id}; nothing shared')
            return None

        shared_at = utc_now()
        metadata = MemoryMetadata(success=source.metadata.success,
                                  confidence=source.metadata.confidence,
                                  collaborator_ids=list(source.metadata.collaborator_ids),
                                  tags=source.metadata.tags + [f'shared_from_{from_id}', f'shared_at_{shared_at.isoformat()}'])
        return self.append(MemoryRecord(participant_id=to_id,
                                        kind=source.kind,
                                        content=dict(source.content),
                                        metadata=metadata,
                                        timestamp=shared_at))

    def participants(self) -> List[str]:
        """Participants with a loaded partition or a persisted log."""
        known = set(self._records)
        for path in self.storage_dir.glob(f'*{MEMORY_SUFFIX}'):
            known.add(path.name[:-len(MEMORY_SUFFIX)])
        return sorted(known)

    def invalidate(self, participant_id: str) -> None:
        """Drop the cached partition so the next access re-reads it from disk."""
        with self._lock(participant_id):
            self._records.pop(participant_id, None)
            self._patterns.pop(participant_id, None)

    def count(self, participant_id: str) -> int:
        with self._lock(participant_id):
            return len(self._load_records(participant_id))

    def _validate(self, record: MemoryRecord) -> None:
        if not record.participant_id or not str(record.participant_id).strip():
            raise ValidationError('Memory record requires participant_id')
        if not record.kind:
            raise ValidationError('Memory record requires kind')
        if record.kind not in MEMORY_KINDS:
            raise ValidationError(f'Unknown memory kind: {record.kind}')
        if not isinstance(record.content, dict):
            raise ValidationError('Memory content must be a mapping')
        confidence = record.metadata.confidence
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValidationError(f'Memory confidence out of range: {confidence}')

    def _extract_pattern(self, patterns: Dict[str, LearningPattern], record: MemoryRecord) -> Dict[str, LearningPattern]:
        """Return a new pattern map with the decision folded in."""
        decision = record.content.get('decision', 'unknown')
        key = f'decision:{decision}'
        existing = patterns.get(key)

        pattern = LearningPattern(pattern_key=key,
                                  examples=deque(maxlen=self.config.max_pattern_examples))
        if existing is not None:
            pattern.frequency = existing.frequency
            pattern.success_rate = existing.success_rate
            pattern.examples.extend(existing.examples)

        pattern.frequency += 1
        hit = 1.0 if record.metadata.success else 0.0
        pattern.success_rate = (pattern.success_rate * (pattern.frequency - 1) + hit) / pattern.frequency
        pattern.last_seen = record.timestamp
        pattern.examples.append(dumps_content(record.content))

        updated = dict(patterns)
        updated[key] = pattern
        return updated

    def _lock(self, participant_id: str) -> threading.RLock:
        with self._locks_guard:
            if participant_id not in self._locks:
                self._locks[participant_id] = threading.RLock()
            return self._locks[participant_id]

    def _memory_path(self, participant_id: str) -> Path:
        return self.storage_dir / f'{participant_id}{MEMORY_SUFFIX}'

    def _patterns_path(self, participant_id: str) -> Path:
        return self.storage_dir / f'{participant_id}{PATTERNS_SUFFIX}'

    def _load_records(self, participant_id: str) -> List[MemoryRecord]:
        if participant_id not in self._records:
            data = read_document(self._memory_path(participant_id), default=[])
            try:
                self._records[participant_id] = [MemoryRecord.from_dict(item) for item in data]
            except (KeyError, TypeError, ValueError) as e:
                raise PersistenceError(f'Corrupt memory log for {participant_id}: {e}')
        return self._records[participant_id]

    def _load_patterns(self, participant_id: str) -> Dict[str, LearningPattern]:
        if participant_id not in self._patterns:
            data = read_document(self._patterns_path(participant_id), default=[])
            try:
                patterns = [LearningPattern.from_dict(item, self.config.max_pattern_examples) for item in data]
            except (KeyError, TypeError, ValueError) as e:
                raise PersistenceError(f'Corrupt pattern document for {participant_id}: {e}')
            self._patterns[participant_id] = {p.pattern_key: p for p in patterns}
        return self._patterns[participant_id]

    def _flush(self, participant_id: str, records: List[MemoryRecord], patterns: Dict[str, LearningPattern]) -> None:
        write_document(self._memory_path(participant_id), [r.to_dict() for r in records])
        write_document(self._patterns_path(participant_id), [p.to_dict() for p in patterns.values()])
