import asyncio
from typing import Dict, List, Optional

from anyapi.interfaces.secret_store import SecretStore


class InMemSecretStore(SecretStore):
    """REQUIRED
    Vault kept in process memory, one version list per secret name.

    Versions are "1", "2", ... in write order.
    """

    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        self._versions: Dict[str, List[str]] = {name: [value] for name, value in (secrets or {}).items()}
        self._lock = asyncio.Lock()

    async def get(self, name: str, version: Optional[str] = None) -> Optional[str]:
        async with self._lock:
            versions = self._versions.get(name)
            if not versions:
                return None
            if version is None:
                return versions[-1]
            try:
                index = int(version) - 1
            except ValueError:
                return None
            return versions[index] if 0 <= index < len(versions) else None

    async def set(self, name: str, value: str) -> str:
        async with self._lock:
            versions = self._versions.setdefault(name, [])
            versions.append(value)
            return str(len(versions))

    async def delete(self, name: str) -> bool:
        async with self._lock:
            return self._versions.pop(name, None) is not None
