"""
Interrupt Persistence - Stores suspended workflow runs until they resume.

A backend only has to support upsert-by-id semantics: ``save`` overwrites any
previous interrupt of the same workflow, ``load`` raises
``WorkflowNotFoundError`` for unknown ids, and ``delete`` is idempotent.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from agentflow.config import get_storage_path
from agentflow.exceptions import PersistenceError, WorkflowNotFoundError
from agentflow.graph.hitl import WorkflowInterrupt
from agentflow.schemas.interrupt import InterruptSnapshot
from agentflow.utils.io import atomic_write

logger = logging.getLogger(__name__)


class Persistence(ABC):
    """Contract every interrupt store satisfies."""

    @abstractmethod
    async def save(self, workflow_id: str, interrupt: WorkflowInterrupt) -> None:
        pass

    @abstractmethod
    async def load(self, workflow_id: str) -> WorkflowInterrupt:
        pass

    @abstractmethod
    async def delete(self, workflow_id: str) -> None:
        pass

    async def exists(self, workflow_id: str) -> bool:
        try:
            await self.load(workflow_id)
        except WorkflowNotFoundError:
            return False
        return True


class InMemoryPersistence(Persistence):
    """Keeps interrupts in a dict; for tests and single-process apps."""

    def __init__(self):
        self._interrupts: dict[str, WorkflowInterrupt] = {}

    async def save(self, workflow_id: str, interrupt: WorkflowInterrupt) -> None:
        self._interrupts[workflow_id] = interrupt

    async def load(self, workflow_id: str) -> WorkflowInterrupt:
        try:
            return self._interrupts[workflow_id]
        except KeyError:
            raise WorkflowNotFoundError(workflow_id) from None

    async def delete(self, workflow_id: str) -> None:
        self._interrupts.pop(workflow_id, None)

    async def exists(self, workflow_id: str) -> bool:
        return workflow_id in self._interrupts


class FilePersistence(Persistence):
    """
    One JSON document per suspended workflow.

    Directory structure:
        {base_path}/
            {workflow_id}.json
    """

    def __init__(self, base_path: str | Path | None = None):
        self.base_path = Path(base_path) if base_path is not None else get_storage_path()

    def _path(self, workflow_id: str) -> Path:
        if not workflow_id or "/" in workflow_id or "\\" in workflow_id or ".." in workflow_id:
            raise PersistenceError(f"Invalid workflow id: {workflow_id!r}")
        return self.base_path / f"{workflow_id}.json"

    async def save(self, workflow_id: str, interrupt: WorkflowInterrupt) -> None:
        path = self._path(workflow_id)
        snapshot = InterruptSnapshot.from_interrupt(workflow_id, interrupt)

        def _write():
            with atomic_write(path) as f:
                f.write(snapshot.model_dump_json(indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Saved interrupt of workflow {workflow_id} to {path}")

    async def load(self, workflow_id: str) -> WorkflowInterrupt:
        path = self._path(workflow_id)

        def _read() -> InterruptSnapshot:
            if not path.exists():
                raise WorkflowNotFoundError(workflow_id)
            try:
                return InterruptSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
            except ValidationError as e:
                raise PersistenceError(f"Corrupt interrupt file {path}: {e}") from e

        snapshot = await asyncio.to_thread(_read)
        return snapshot.to_interrupt()

    async def delete(self, workflow_id: str) -> None:
        path = self._path(workflow_id)

        def _delete():
            path.unlink(missing_ok=True)

        await asyncio.to_thread(_delete)
        logger.debug(f"Deleted interrupt of workflow {workflow_id}")

    async def exists(self, workflow_id: str) -> bool:
        return await asyncio.to_thread(self._path(workflow_id).exists)
