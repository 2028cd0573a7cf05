"""
Persistent key/value storage for the client's auth state.

Four fixed keys make up the whole persisted surface: the access token, the refresh token,
the cached user and the cached permission set. Only the auth service writes them; every
other component reads through the AuthContext.
"""
from typing import Any, Dict, Optional
from pathlib import Path
import json
import os
import tempfile
import redis
from tutor_portal.config import Settings

# Storage keys
ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"
PERMISSIONS_KEY = "permissions"

AUTH_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, PERMISSIONS_KEY)


class Storage:
    """Interface shared by the storage backends. Values are always strings."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str):
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError

    def clear(self):
        """Remove every auth key. Safe to call on empty storage."""
        for key in AUTH_KEYS:
            self.remove(key)

    def get_json(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            return None

    def set_json(self, key: str, value: Any):
        self.set(key, json.dumps(value, default=str))


class MemoryStorage(Storage):
    """Dictionary-backed storage, lives as long as the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str):
        self._data[key] = value

    def remove(self, key: str):
        self._data.pop(key, None)

    def __len__(self):
        return len(self._data)


class FileStorage(Storage):
    """
    Storage kept in a JSON file, one file per namespace.

    Every write rewrites the file through a temporary file so a crash never leaves a
    half-written token store behind.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: Dict[str, str]):
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".storage-")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str):
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove(self, key: str):
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


class RedisStorage(Storage):
    """
    Redis-backed storage.

    Keys are prefixed with the namespace (one namespace per portal visitor) so several
    clients can share one redis server.

    Attributes:
        namespace (str): Prefix for every key of this storage
        client (redis.StrictRedis): Redis client instance
    """

    def __init__(self, settings: Settings, namespace: str = "default", client: Optional[redis.StrictRedis] = None):
        self.namespace = namespace

        # decode_responses=True so values come back as str instead of bytes
        self.client = client or redis.StrictRedis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            decode_responses=True
        )

    def _key(self, key: str) -> str:
        return f"tutor_portal:{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        return self.client.get(self._key(key))

    def set(self, key: str, value: str):
        self.client.set(self._key(key), value)

    def remove(self, key: str):
        self.client.delete(self._key(key))


def create_storage(settings: Settings, namespace: str = "default") -> Storage:
    """
    Build the storage backend selected in the settings.

    Args:
    - settings (Settings): Portal settings
    - namespace (str): Storage namespace, usually a visitor id

    Returns:
    - Storage: The storage instance
    """
    backend = settings.storage_backend.lower()
    if backend == "redis" or settings.use_redis:
        return RedisStorage(settings, namespace)
    if backend == "file":
        return FileStorage(os.path.join(settings.storage_path, f"{namespace}.json"))
    if backend == "memory":
        return MemoryStorage()
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
