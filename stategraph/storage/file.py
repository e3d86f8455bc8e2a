"""
File-backed Checkpoint Storage.

Each checkpoint is one JSON document named after its id inside a single
directory. Writes go to a temporary file that is then renamed over the
target, so a reader never sees a half-written checkpoint and concurrent
saves of the same id resolve to the last one written.
"""

from typing import List, Optional
from pathlib import Path
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError
import asyncio
import functools
import logging
import os
import re
import tempfile
import time

from stategraph.exceptions import CheckpointStorageError
from stategraph.storage.base import CheckpointStorage
from stategraph.storage.models import Checkpoint


logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class StoredCheckpoint(BaseModel):
    """
    On-disk document: the checkpoint plus its save sequence.

    The sequence orders saves that share a timestamp, independent of how
    fine-grained the filesystem's modification times are.
    """
    sequence: int
    checkpoint: Checkpoint


class FileCheckpointStorage(CheckpointStorage):
    """
    Checkpoint storage in a local directory.

    Blocking file I/O runs in the event loop's default executor. The state
    payload must be JSON-serializable. Listing skips documents that can't be
    read (logging a warning) so one bad file doesn't block other workflows;
    loading that document by id still raises CheckpointStorageError.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._last_sequence = 0

    async def save(self, checkpoint: Checkpoint) -> None:
        path = self._path_for(checkpoint.id)
        if path is None:
            raise CheckpointStorageError(f"Invalid checkpoint id '{checkpoint.id}'")

        async with self._lock:
            stored = StoredCheckpoint(sequence=self._next_sequence(), checkpoint=checkpoint)
            try:
                payload = stored.model_dump_json()
            except PydanticSerializationError as e:
                raise CheckpointStorageError(
                    f"State of checkpoint '{checkpoint.id}' is not JSON-serializable: {e}"
                ) from e
            await self._run(self._write, path, payload)

    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        path = self._path_for(checkpoint_id)
        if path is None:
            return None
        async with self._lock:
            stored = await self._run(self._read, path)
        return stored.checkpoint if stored else None

    async def list(self, workflow_id: str) -> List[Checkpoint]:
        async with self._lock:
            checkpoints = await self._run(self._read_all)
        return self.newest_first([cp for cp in checkpoints if cp.workflow_id == workflow_id])

    async def delete(self, checkpoint_id: str) -> None:
        path = self._path_for(checkpoint_id)
        if path is None:
            return
        async with self._lock:
            await self._run(self._unlink, path)

    async def delete_by_workflow(self, workflow_id: str) -> None:
        async with self._lock:
            checkpoints = await self._run(self._read_all)
            for checkpoint in checkpoints:
                if checkpoint.workflow_id == workflow_id:
                    await self._run(self._unlink, self._path_for(checkpoint.id))

    def _next_sequence(self) -> int:
        # Nanosecond clock keeps separate instances roughly ordered; +1 keeps
        # this instance strictly increasing on coarse clocks
        self._last_sequence = max(time.time_ns(), self._last_sequence + 1)
        return self._last_sequence

    def _path_for(self, checkpoint_id: str) -> Optional[Path]:
        if not _SAFE_ID.match(checkpoint_id) or checkpoint_id in (".", ".."):
            return None
        return self.directory / f"{checkpoint_id}.json"

    @staticmethod
    async def _run(func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    def _write(self, path: Path, payload: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @staticmethod
    def _read(path: Path) -> Optional[StoredCheckpoint]:
        try:
            payload = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise CheckpointStorageError(f"Corrupt checkpoint file {path}: {e}") from e
        try:
            return StoredCheckpoint.model_validate_json(payload)
        except ValidationError as e:
            raise CheckpointStorageError(f"Corrupt checkpoint file {path}: {e}") from e

    def _read_all(self) -> List[Checkpoint]:
        """Every readable checkpoint, oldest save first."""
        stored = []
        for path in self.directory.glob("*.json"):
            if path.name.startswith(".tmp-"):
                continue
            try:
                document = self._read(path)
            except CheckpointStorageError as e:
                logger.warning(f"Skipping unreadable checkpoint: {e}")
                continue
            if document is not None:
                stored.append(document)

        stored.sort(key=lambda document: document.sequence)
        return [document.checkpoint for document in stored]

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Checkpoint file {path} already removed")
