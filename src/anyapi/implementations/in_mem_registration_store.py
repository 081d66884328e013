from collections import defaultdict
from typing import DefaultDict, Dict, List, Optional

from anyapi.data.endpoint import Endpoint
from anyapi.data.registration import Registration, RegistrationSerializer, new_etag
from anyapi.exceptions import ConcurrencyConflictError, RegistrationNotFoundError
from anyapi.interfaces.registration_store import RegistrationStore
from anyapi.python_specific_tooling.async_rwlock import AsyncRWLock


class InMemRegistrationStore(RegistrationStore):
    """REQUIRED
    In-memory implementation of `RegistrationStore`.

    Each registration is kept as its serialized JSON document, the form a
    document database would hold, so every read builds a fresh object and
    mutating a returned registration never changes the stored one.

    Every owner has a reader-writer lock of its own: lookups run
    concurrently, writes are exclusive, and owners never wait on each other.
    """

    def __init__(self):
        super().__init__(registration_store_type="in_memory")
        self._serializer = RegistrationSerializer()
        self._locks: DefaultDict[str, AsyncRWLock] = defaultdict(AsyncRWLock)

        # owner id -> api id -> registration document
        self._documents: Dict[str, Dict[str, str]] = {}

    def _load(self, owner_id: str, api_id: str) -> Optional[Registration]:
        document = self._documents.get(owner_id, {}).get(api_id)
        return self._serializer.validate_json(document) if document is not None else None

    def _save(self, registration: Registration) -> str:
        document = self._serializer.to_json(registration.model_copy(update={"etag": new_etag()}))
        self._documents.setdefault(registration.owner_id, {})[registration.id] = document
        return document

    async def get(self, owner_id: str, api_id: str) -> Optional[Registration]:
        async with self._locks[owner_id].read():
            return self._load(owner_id, api_id)

    async def get_all(self, owner_id: str) -> List[Registration]:
        async with self._locks[owner_id].read():
            return [
                self._serializer.validate_json(document)
                for document in self._documents.get(owner_id, {}).values()
            ]

    async def upsert(self, registration: Registration) -> Registration:
        async with self._locks[registration.owner_id].write():
            existing = self._load(registration.owner_id, registration.id)
            if existing is not None and existing.etag != registration.etag:
                raise ConcurrencyConflictError(registration.id, registration.etag, existing.etag)
            return self._serializer.validate_json(self._save(registration))

    async def delete(self, owner_id: str, api_id: str) -> bool:
        async with self._locks[owner_id].write():
            documents = self._documents.get(owner_id, {})
            removed = documents.pop(api_id, None) is not None
            if not documents:
                self._documents.pop(owner_id, None)
            return removed

    async def exists(self, owner_id: str, api_id: str) -> bool:
        async with self._locks[owner_id].read():
            return api_id in self._documents.get(owner_id, {})

    async def get_endpoints(self, owner_id: str, api_id: str) -> List[Endpoint]:
        async with self._locks[owner_id].read():
            registration = self._load(owner_id, api_id)
            return registration.endpoints if registration is not None else []

    async def get_endpoint(self, owner_id: str, api_id: str, operation_id: str) -> Optional[Endpoint]:
        async with self._locks[owner_id].read():
            registration = self._load(owner_id, api_id)
            return registration.get_endpoint(operation_id) if registration is not None else None

    async def save_endpoints(self, owner_id: str, api_id: str, endpoints: List[Endpoint]) -> None:
        async with self._locks[owner_id].write():
            registration = self._load(owner_id, api_id)
            if registration is None:
                raise RegistrationNotFoundError(owner_id, api_id)
            self._save(registration.model_copy(update={"endpoints": list(endpoints)}))

    async def update_endpoint(self, owner_id: str, api_id: str, endpoint: Endpoint) -> bool:
        async with self._locks[owner_id].write():
            registration = self._load(owner_id, api_id)
            if registration is None:
                return False
            endpoints = list(registration.endpoints)
            for index, current in enumerate(endpoints):
                if current.id == endpoint.id:
                    endpoints[index] = endpoint
                    self._save(registration.model_copy(update={"endpoints": endpoints}))
                    return True
            return False
