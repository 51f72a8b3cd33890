"""
Canonical id resolution for records entering the engine.

Records coming from the backend carry their identifier under one of several
legacy field names. The lookup below runs once, where a record is turned into
an entity; nothing past that point looks at the aliases again.
"""

from typing import Any, Mapping, Optional, Tuple

from .exceptions import AuthorizationError, ValidationError
from .interfaces import IdentityProvider


ID_ALIASES: Tuple[str, ...] = ("_id", "id", "uid", "userId")


def resolve_canonical_id(record: Mapping[str, Any], aliases: Tuple[str, ...] = ID_ALIASES) -> str:
    """Return the first non-empty identifier among the known aliases."""
    for alias in aliases:
        value = record.get(alias)
        if value is not None and str(value).strip():
            return str(value)
    raise ValidationError(
        "Record has no identifier",
        error_code="missing_id",
        details={'fields': sorted(record.keys())}
    )


class StaticIdentityProvider(IdentityProvider):
    """Fixed identity handed over by the auth collaborator; every request acts as that user."""
    
    def __init__(self, user_id: str):
        if not user_id or not user_id.strip():
            raise ValidationError("User id is required")
        self._user_id = user_id
    
    @classmethod
    def from_user_record(cls, user: Mapping[str, Any]) -> 'StaticIdentityProvider':
        """Build the provider from a raw auth user record."""
        return cls(resolve_canonical_id(user, ("uid", "id", "_id", "userId")))
    
    def current_user_id(self, credential: Optional[str] = None) -> str:
        return self._user_id


class HeaderIdentityProvider(IdentityProvider):
    """Takes the canonical id straight from a request header value.

    The auth collaborator in front of the API has already verified the user;
    the header carries the id it resolved.
    """
    
    def current_user_id(self, credential: Optional[str] = None) -> str:
        if credential is None or not credential.strip():
            raise AuthorizationError("Missing acting user id", error_code="missing_user")
        return credential.strip()
