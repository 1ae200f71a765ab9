"""Concrete implementations of the TokenStore interface.

- `MemoryTokenStore`: keeps the credential for the lifetime of the process.
- `FileTokenStore`: keeps it in a JSON file so it survives restarts. Writes
  go to a temporary sibling file that is then renamed over the target, so
  the credential file is never partially written.

Uses `aiofiles` for async file I/O.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiofiles.os

from marketgraph.domain.interfaces.token_store import TokenStore
from marketgraph.domain.models.envelope import Credential

logger = logging.getLogger(__name__)


def _is_stale(current: Optional[Credential], incoming: Credential) -> bool:
    return current is not None and incoming.issued_at < current.issued_at


class MemoryTokenStore(TokenStore):
    """Process-lifetime credential storage."""

    def __init__(self, credential: Optional[Credential] = None):
        self._credential = credential
        self._lock = asyncio.Lock()

    async def get(self) -> Optional[Credential]:
        return self._credential

    async def set(self, credential: Credential) -> None:
        async with self._lock:
            if _is_stale(self._credential, credential):
                logger.debug("Ignoring stale credential write to memory store.")
                return
            self._credential = credential

    async def remove(self) -> None:
        async with self._lock:
            self._credential = None


class FileTokenStore(TokenStore):
    """Credential storage backed by a single JSON file."""

    def __init__(self, file_path: Union[str, Path]):
        """Initializes the store.

        Args:
            file_path: Path of the credential file. Parent directories are
                created on first write.
        """
        self.file_path = Path(file_path).expanduser()
        self._lock = asyncio.Lock()
        logger.info(f"FileTokenStore initialized at {self.file_path}")

    @property
    def _tmp_path(self) -> Path:
        return self.file_path.with_name(f".{self.file_path.name}.{os.getpid()}.tmp")

    async def _read(self) -> Optional[Credential]:
        if not await aiofiles.os.path.isfile(self.file_path):
            return None
        try:
            async with aiofiles.open(self.file_path, mode='r', encoding='utf-8') as f:
                content = await f.read()
            return Credential.from_dict(json.loads(content))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Credential file {self.file_path} is unreadable ({e}). Treating it as empty.")
            return None

    async def get(self) -> Optional[Credential]:
        return await self._read()

    async def set(self, credential: Credential) -> None:
        async with self._lock:
            if _is_stale(await self._read(), credential):
                logger.debug(f"Ignoring stale credential write to {self.file_path}.")
                return
            tmp_path = self._tmp_path
            try:
                self.file_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(tmp_path, mode='w', encoding='utf-8') as f:
                    await f.write(json.dumps(credential.to_dict(), sort_keys=True))
                    await f.flush()
                await aiofiles.os.replace(tmp_path, self.file_path)
                logger.debug(f"Credential written to {self.file_path}")
            except OSError as e:
                logger.error(f"Failed to write credential file {self.file_path}: {e}")
                try:
                    await aiofiles.os.remove(tmp_path)
                except FileNotFoundError:
                    pass
                raise

    async def remove(self) -> None:
        async with self._lock:
            try:
                await aiofiles.os.remove(self.file_path)
                logger.debug(f"Credential file {self.file_path} removed.")
            except FileNotFoundError:
                pass
