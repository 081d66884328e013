"""Abstract interface for the external vault holding referenced secrets."""

from abc import ABC, abstractmethod
from typing import Optional


class SecretStore(ABC):
    """REQUIRED
    Vault collaborator that resolves ``secret_name`` references.

    Implementations must never log secret values, only names.
    """

    @abstractmethod
    async def get(self, name: str, version: Optional[str] = None) -> Optional[str]:
        """REQUIRED
        Read a secret.

        Args:
            name: Secret name.
            version: Optional version; the latest when omitted.

        Returns:
            The secret value, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def set(self, name: str, value: str) -> str:
        """REQUIRED
        Store a new version of a secret.

        Returns:
            The version identifier of the stored value.
        """
        pass

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """REQUIRED
        Delete every version of a secret.

        Returns:
            True if the secret existed.
        """
        pass
