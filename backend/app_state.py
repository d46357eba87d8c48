"""Backend application state for workspace-scoped services."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from ai_service import TermEnhancer, TermExtractor
from config import settings
from services import GlossaryService
from storage import GlossaryStore, create_store
from workspace_manager import WorkspaceInfo, WorkspaceManager

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceServices:
    workspace: WorkspaceInfo
    store: GlossaryStore
    glossary: GlossaryService


class TermbookAppState:
    """Holds the currently-open workspace and its glossary services."""

    def __init__(
        self,
        workspace_manager: Optional[WorkspaceManager] = None,
        extractor: Optional[TermExtractor] = None,
        enhancer: Optional[TermEnhancer] = None,
    ):
        self._lock = threading.RLock()
        self.workspace_manager = workspace_manager or WorkspaceManager()
        # Language-model clients are shared across workspaces.
        self.extractor = extractor or TermExtractor()
        self.enhancer = enhancer or TermEnhancer()
        self._services: Optional[WorkspaceServices] = None
        self._load_workspace(self.workspace_manager.active_workspace())

    def current(self) -> WorkspaceServices:
        with self._lock:
            assert self._services is not None
            return self._services

    def open_workspace(self, *, name: Optional[str] = None, path: Optional[str] = None) -> WorkspaceServices:
        workspace = self.workspace_manager.open_workspace(name=name, path=path)
        with self._lock:
            self._load_workspace(workspace)
            assert self._services is not None
            return self._services

    def create_workspace(
        self,
        name: str,
        store_backend: Optional[str] = None,
        remote_table: Optional[str] = None,
    ) -> WorkspaceServices:
        if (store_backend or "").lower() == "remote" and not settings.remote_url:
            raise ValueError("A remote workspace needs TERMBOOK_REMOTE_URL to be set")
        workspace = self.workspace_manager.create_workspace(
            name, store_backend=store_backend, remote_table=remote_table
        )
        with self._lock:
            self._load_workspace(workspace)
            assert self._services is not None
            return self._services

    def _load_workspace(self, workspace: WorkspaceInfo) -> None:
        store = create_store(settings, workspace)
        self._services = WorkspaceServices(
            workspace=workspace,
            store=store,
            glossary=GlossaryService(store=store),
        )
        logger.info("Opened workspace %r (%s store)", workspace.name, workspace.store_backend)
