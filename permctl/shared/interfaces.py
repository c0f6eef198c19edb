"""
Core interfaces for permctl.

This module defines the abstract interfaces the storage and configuration
components implement, so callers can be handed any implementation (including
in-memory fakes) explicitly.
"""

from abc import ABC, abstractmethod
from typing import List

from .models import Token


class ITokenStore(ABC):
    """Interface for anything that can securely persist Tokens."""

    @abstractmethod
    def list_tokens(self, reveal_tokens: bool = False) -> List[Token]:
        """List every stored token; secrets are redacted unless revealed."""
        pass

    @abstractmethod
    def get(self, system: str) -> Token:
        """Get the token stored for a system, raising TokenNotFoundError."""
        pass

    @abstractmethod
    def put(self, system: str, endpoint: str, secret: str) -> None:
        """Create or overwrite the token stored for a system."""
        pass

    @abstractmethod
    def delete(self, system: str) -> None:
        """Remove the token stored for a system."""
        pass


class IConfigStore(ABC):
    """Interface for persisting which context is current."""

    @abstractmethod
    def get_current_context(self) -> str:
        """Return the current system name, raising ConfigNotFoundError if unset."""
        pass

    @abstractmethod
    def set_current_context(self, system: str) -> None:
        """Persist a system name as the current context."""
        pass

    @abstractmethod
    def clear_current_context(self) -> None:
        """Forget the current context."""
        pass
