"""Base repository interface."""
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Abstract base class for repositories."""

    @abstractmethod
    def get(self, id: str) -> Optional[T]:
        """Get an item by ID."""
        pass

    @abstractmethod
    def get_all(self) -> List[T]:
        """Get all items."""
        pass

    @abstractmethod
    def delete(self, id: str) -> None:
        """Delete an item by ID."""
        pass
