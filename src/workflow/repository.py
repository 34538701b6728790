# src/workflow/repository.py — v1
"""Workflow persistence over a key → blob store.

One JSON document per workflow id; every save replaces the whole record.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from storyloom.core.errors import WorkflowNotFoundError
from storyloom.storage.base_store import BaseBlobStore
from storyloom.workflow.models import Workflow

logger = logging.getLogger(__name__)


class WorkflowRepository:
    """Load and save Workflow records.

    Args:
        store: Backend blob store.
    """

    def __init__(self, store: BaseBlobStore) -> None:
        self._store = store

    @property
    def store(self) -> BaseBlobStore:
        return self._store

    async def save(self, workflow: Workflow) -> None:
        await self._store.put(workflow.id, workflow.model_dump_json(indent=2))
        logger.debug("Workflow saved: %s", workflow.id)

    async def load(self, workflow_id: str) -> Workflow:
        """Load a workflow.

        Raises:
            WorkflowNotFoundError: If nothing is stored under the id.
        """
        data = await self._store.get(workflow_id)
        if data is None:
            raise WorkflowNotFoundError(workflow_id)
        return Workflow.model_validate_json(data)

    async def exists(self, workflow_id: str) -> bool:
        return await self._store.get(workflow_id) is not None

    async def delete(self, workflow_id: str) -> None:
        await self._store.delete(workflow_id)

    async def list_for_user(self, user_id: str) -> list[Workflow]:
        """A user's workflows, most recently updated first.

        Unreadable records are logged and skipped.
        """
        workflows: list[Workflow] = []
        for key in await self._store.list_keys(f"{user_id}_"):
            data = await self._store.get(key)
            if data is None:
                continue
            try:
                workflow = Workflow.model_validate_json(data)
            except ValidationError as exc:
                logger.warning("Skipping unreadable workflow record %s: %s", key, exc)
                continue
            # The key prefix alone also matches users whose id extends this one
            if workflow.user_id == user_id:
                workflows.append(workflow)
        workflows.sort(key=lambda w: w.updated_at, reverse=True)
        return workflows
