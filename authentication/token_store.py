from __future__ import annotations

import json
import os
import secrets
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from authentication.models import TokenRecord
from elfsquad.constants import (
    LOGGER,
    REFRESH_TOKEN_KEY,
    STATE_KEY_PREFIX,
    TOKEN_RESPONSE_KEY,
)


class KeyValueStorage(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    def has(self, key: str) -> bool:
        return bool(self.get(key))


class MemoryStorage(KeyValueStorage):
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileStorage(KeyValueStorage):
    """JSON file backed storage that survives process restarts."""

    def __init__(self, path: str | Path = ".elfsquad_tokens.json") -> None:
        self._path = Path(path)

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._read_all()
        values[key] = value
        self._write_all(values)

    def delete(self, key: str) -> None:
        values = self._read_all()
        if values.pop(key, None) is not None:
            self._write_all(values)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Token store file is invalid; expected top-level JSON object.")
        return {str(key): str(value) for key, value in raw.items()}

    def _write_all(self, payload: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()


class TokenStore:
    """Named token entries on top of a key/value storage backend."""

    def __init__(self, storage: KeyValueStorage | None = None) -> None:
        self.storage = storage or MemoryStorage()

    def has_refresh_token(self) -> bool:
        return self.storage.has(REFRESH_TOKEN_KEY)

    def get_refresh_token(self) -> str | None:
        return self.storage.get(REFRESH_TOKEN_KEY)

    def save_refresh_token(self, refresh_token: str) -> None:
        self.storage.set(REFRESH_TOKEN_KEY, refresh_token)

    def delete_refresh_token(self) -> None:
        self.storage.delete(REFRESH_TOKEN_KEY)

    def has_token_response(self) -> bool:
        return self.storage.has(TOKEN_RESPONSE_KEY)

    def get_token_response(self) -> TokenRecord | None:
        raw = self.storage.get(TOKEN_RESPONSE_KEY)
        if not raw:
            return None
        try:
            return TokenRecord.from_json(raw)
        except (TypeError, ValueError) as error:
            LOGGER.warning("Discarding unreadable stored token response: %s", error)
            self.delete_token_response()
            return None

    def save_token_response(self, record: TokenRecord) -> None:
        self.storage.set(TOKEN_RESPONSE_KEY, record.to_json())

    def delete_token_response(self) -> None:
        self.storage.delete(TOKEN_RESPONSE_KEY)

    def delete_all(self) -> None:
        self.delete_refresh_token()
        self.delete_token_response()

    # -- sign-in attempt state -------------------------------------------------

    def create_state(self, data: Any) -> str:
        state = secrets.token_urlsafe(16)
        self.storage.set(f"{STATE_KEY_PREFIX}{state}", json.dumps(data))
        return state

    def get_state(self, state: str) -> Any | None:
        raw = self.storage.get(f"{STATE_KEY_PREFIX}{state}")
        if raw is None:
            return None
        return json.loads(raw)

    def delete_state(self, state: str) -> None:
        self.storage.delete(f"{STATE_KEY_PREFIX}{state}")
