"""
Custom exceptions for the peereval engine.
"""

from typing import Optional, Any, Dict, List


class PeerEvalException(Exception):
    """Base exception for all peereval errors."""
    
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationError(PeerEvalException):
    """Raised when input fails validation, before anything reaches the store."""
    pass


class AuthorizationError(PeerEvalException):
    """Raised when the store rejects the credentials after its refresh attempt."""
    pass


class RemoteOperationError(PeerEvalException):
    """Raised when the store answers with any other non-success response."""
    
    def __init__(self, message: str, status: Optional[int] = None, remote_message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="remote_error", details=details)
        self.status = status
        self.remote_message = remote_message


class NotFoundError(PeerEvalException):
    """Raised when a lookup by id finds no record."""
    pass


class PartialWriteError(PeerEvalException):
    """Raised when one step of an ordered write sequence fails.

    Steps before the failing one stay committed; there is no rollback.
    """
    
    def __init__(self, message: str, step_index: int, step_description: str,
                 entity_id: Optional[str] = None, completed_entity_ids: Optional[List[str]] = None):
        super().__init__(
            message,
            error_code="partial_write",
            details={
                'step_index': step_index,
                'step_description': step_description,
                'entity_id': entity_id,
                'completed_entity_ids': list(completed_entity_ids or []),
            }
        )
        self.step_index = step_index
        self.step_description = step_description
        self.entity_id = entity_id
        self.completed_entity_ids = list(completed_entity_ids or [])


class ConfigurationError(PeerEvalException):
    """Raised when configuration is invalid."""
    pass
