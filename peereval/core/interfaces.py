"""
Core interfaces and abstract base classes for the peereval engine.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TypeVar, Generic

from .enums import StoreTable


T = TypeVar('T')


class RecordStore(ABC):
    """Generic CRUD collaborator holding one table per entity type."""
    
    @abstractmethod
    def read(self, table: StoreTable, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return every record whose fields equal the given filter values."""
        pass
    
    @abstractmethod
    def insert(self, table: StoreTable, records: List[Dict[str, Any]]) -> None:
        """Insert new records."""
        pass
    
    @abstractmethod
    def update(self, table: StoreTable, id_column: str, id_value: str, updates: Dict[str, Any]) -> None:
        """Apply a partial update to the record with the given key."""
        pass
    
    @abstractmethod
    def delete(self, table: StoreTable, id_column: str, id_value: str) -> None:
        """Delete the record with the given key."""
        pass


class IdGenerator(ABC):
    """Source of identifiers for newly created entities."""
    
    @abstractmethod
    def generate(self) -> str:
        """Return a new identifier."""
        pass


class IdentityProvider(ABC):
    """Supplies the canonical id of the user acting on the engine."""
    
    @abstractmethod
    def current_user_id(self, credential: Optional[str] = None) -> str:
        """Return the acting user's id for a request credential.

        Raises AuthorizationError when no user can be identified.
        """
        pass


class Repository(ABC, Generic[T]):
    """Abstract base class for repositories."""
    
    @abstractmethod
    def add(self, entity: T) -> T:
        """Persist a new entity."""
        pass
    
    @abstractmethod
    def find_by_id(self, entity_id: str) -> T:
        """Find entity by ID."""
        pass
    
    @abstractmethod
    def find_by(self, field: str, value: Any) -> List[T]:
        """Find all entities whose field equals value."""
        pass
    
    @abstractmethod
    def update(self, entity_id: str, updates: Dict[str, Any]) -> None:
        """Apply a partial update to an entity."""
        pass
    
    @abstractmethod
    def delete(self, entity_id: str) -> None:
        """Delete an entity by ID."""
        pass
