"""Interface for credential storage.

Defines the contract for holding and persisting the current bearer
credential. Implementations must serialize concurrent `set` calls.
"""

import abc
from typing import Optional

from ..models.envelope import Credential

class TokenStore(abc.ABC):
    """Abstract Base Class for credential storage."""

    @abc.abstractmethod
    async def get(self) -> Optional[Credential]:
        """Returns the stored credential, or None when nothing is stored."""
        pass

    @abc.abstractmethod
    async def set(self, credential: Credential) -> None:
        """Stores a credential, replacing the current one.

        A credential issued before the one already stored is a stale
        write and is ignored.

        Args:
            credential: The credential to store.
        """
        pass

    @abc.abstractmethod
    async def remove(self) -> None:
        """Forgets the stored credential."""
        pass
