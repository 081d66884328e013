"""Abstract interface for registration persistence.

Every operation is scoped by owner id. Implementations may be in-memory,
document databases or anything else; the engine only relies on this
contract and on ``etag`` based optimistic concurrency.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel

from anyapi.data.endpoint import Endpoint
from anyapi.data.registration import Registration


class RegistrationStore(BaseModel, ABC):
    """REQUIRED
    Persistence collaborator for registrations and their endpoints.

    Writes replace the stored ``etag``. An upsert whose registration carries
    an ``etag`` different from the stored one raises ConcurrencyConflictError.

    Note:
        All methods are async to support both in-process and remote backends.
    """
    registration_store_type: str

    @abstractmethod
    async def get(self, owner_id: str, api_id: str) -> Optional[Registration]:
        """REQUIRED
        Return the registration, or None if the owner has no such API."""
        pass

    @abstractmethod
    async def get_all(self, owner_id: str) -> List[Registration]:
        """REQUIRED
        Return every registration of the owner."""
        pass

    @abstractmethod
    async def upsert(self, registration: Registration) -> Registration:
        """REQUIRED
        Insert or replace a registration.

        Args:
            registration: The registration to store. Its ``owner_id`` selects the partition.

        Returns:
            The stored registration with its new ``etag``.
        """
        pass

    @abstractmethod
    async def delete(self, owner_id: str, api_id: str) -> bool:
        """REQUIRED
        Remove a registration and its endpoints.

        Returns:
            True if it existed.
        """
        pass

    @abstractmethod
    async def exists(self, owner_id: str, api_id: str) -> bool:
        """REQUIRED"""
        pass

    @abstractmethod
    async def get_endpoints(self, owner_id: str, api_id: str) -> List[Endpoint]:
        """REQUIRED
        Return the endpoints of a registration, empty if it doesn't exist."""
        pass

    @abstractmethod
    async def get_endpoint(self, owner_id: str, api_id: str, operation_id: str) -> Optional[Endpoint]:
        """REQUIRED
        Look up one endpoint by operation id or endpoint id."""
        pass

    @abstractmethod
    async def save_endpoints(self, owner_id: str, api_id: str, endpoints: List[Endpoint]) -> None:
        """REQUIRED
        Replace the endpoints of an existing registration."""
        pass

    @abstractmethod
    async def update_endpoint(self, owner_id: str, api_id: str, endpoint: Endpoint) -> bool:
        """REQUIRED
        Replace one endpoint matched by id.

        Returns:
            True if the endpoint existed.
        """
        pass
