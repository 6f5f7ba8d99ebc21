"""
Error taxonomy shared by all services.
"""

from typing import Optional


class AgentMindError(Exception):
    """Base exception for all substrate errors."""

    def to_dict(self) -> dict:
        return {'type': type(self).__name__, 'message': str(self)}


class ValidationError(AgentMindError):
    """Malformed record, node or trigger. State is left untouched."""
    pass


class NotFoundError(AgentMindError):
    """Unknown participant, node or workflow id."""
    pass


class ConsistencyError(AgentMindError):
    """Operation references a node that does not exist."""
    pass


class PersistenceError(AgentMindError):
    """A persisted document could not be read or written."""
    pass


class CapabilityError(AgentMindError):
    """External generation failed or timed out after bounded retries."""

    def __init__(self, message: str, participant_id: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.participant_id = participant_id
        self.attempts = attempts

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({'participant_id': self.participant_id, 'attempts': self.attempts})
        return data
