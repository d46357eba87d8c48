"""Workspaces: one glossary per user or team.

Each workspace is a ``<slug>.termbook`` directory under ``<data_dir>/workspaces``.
It holds the team's ``glossary.json`` plus a ``workspace.json`` manifest that
records the display name and which store backs the glossary, so one team can
keep a local file while another points at a hosted table.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import settings
from storage import STORE_BACKENDS, JsonGlossaryStore

logger = logging.getLogger(__name__)

SUFFIX = ".termbook"
MANIFEST = "workspace.json"
DEFAULT_NAME = "Default"


@dataclass(frozen=True)
class WorkspaceInfo:
    name: str
    root: Path
    store_backend: str = "json"
    remote_table: Optional[str] = None

    @property
    def slug(self) -> str:
        return self.root.name

    @property
    def glossary_path(self) -> Path:
        return self.root / JsonGlossaryStore.FILENAME

    def answers_to(self, name: str) -> bool:
        wanted = name.strip().lower()
        return wanted in {self.name.lower(), self.slug.lower(), self.slug[: -len(SUFFIX)].lower()}


def display_name(name: str) -> str:
    text = " ".join((name or "").split())
    if text.lower().endswith(SUFFIX):
        text = text[: -len(SUFFIX)].strip()
    return text or "Untitled"


def slugify(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_.-]+", "-", name).strip("-.")
    return slug or f"workspace-{int(time.time())}"


class WorkspaceManager:
    """Keeps track of the team glossaries on disk and which one is open."""

    def __init__(self, base_dir: Optional[Path] = None, default_store: Optional[str] = None):
        data_dir = Path(base_dir) if base_dir else settings.data_dir
        self.workspaces_dir = (data_dir / "workspaces").resolve()
        self.state_path = (data_dir / "active_workspace.json").resolve()
        self.default_store = (default_store or settings.store_backend or "json").lower()
        self.workspaces_dir.mkdir(parents=True, exist_ok=True)

    def list_workspaces(self) -> List[WorkspaceInfo]:
        workspaces = [
            self._load(path)
            for path in self.workspaces_dir.iterdir()
            if path.is_dir() and path.suffix == SUFFIX
        ]
        return sorted(workspaces, key=lambda workspace: workspace.name.lower())

    def find(self, name: str) -> Optional[WorkspaceInfo]:
        if not name or not name.strip():
            return None
        for workspace in self.list_workspaces():
            if workspace.answers_to(name):
                return workspace
        return None

    def active_workspace(self) -> WorkspaceInfo:
        """The remembered workspace, else the first one, else a fresh ``Default``."""
        remembered = self._remembered_root()
        if remembered is not None:
            return self._load(remembered)

        workspaces = self.list_workspaces()
        if not workspaces:
            return self.create_workspace(DEFAULT_NAME)
        self._remember(workspaces[0])
        return workspaces[0]

    def create_workspace(
        self,
        name: str,
        store_backend: Optional[str] = None,
        remote_table: Optional[str] = None,
    ) -> WorkspaceInfo:
        """Create and activate a workspace; an existing one with the same name is reopened."""
        backend = (store_backend or self.default_store).lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(f"Unknown store backend: {store_backend}")

        title = display_name(name)
        existing = self.find(title)
        if existing is not None:
            self._remember(existing)
            return existing

        root = self._free_root(slugify(title))
        root.mkdir(parents=True)
        workspace = WorkspaceInfo(
            name=title,
            root=root,
            store_backend=backend,
            remote_table=(remote_table or "").strip() or None,
        )
        self._write_manifest(workspace)
        self._remember(workspace)
        logger.info("Created workspace %r (%s store) at %s", title, backend, root)
        return workspace

    def open_workspace(self, name: Optional[str] = None, path: Optional[str] = None) -> WorkspaceInfo:
        if path:
            root = Path(path).expanduser().resolve()
            if root.suffix != SUFFIX or not root.is_dir():
                raise FileNotFoundError(f"Workspace not found: {path}")
            workspace = self._load(root)
        elif name:
            workspace = self.find(name)
            if workspace is None:
                raise FileNotFoundError(f"Workspace not found: {name}")
        else:
            raise ValueError("Must provide workspace name or path")

        self._remember(workspace)
        return workspace

    # ------------------------------------------------------------------
    # Manifest and active-workspace state
    # ------------------------------------------------------------------
    def _free_root(self, slug: str) -> Path:
        root = self.workspaces_dir / f"{slug}{SUFFIX}"
        counter = 2
        while root.exists():
            root = self.workspaces_dir / f"{slug}-{counter}{SUFFIX}"
            counter += 1
        return root

    def _load(self, root: Path) -> WorkspaceInfo:
        manifest = self._read_json(root / MANIFEST) or {}
        backend = str(manifest.get("store") or self.default_store).lower()
        if backend not in STORE_BACKENDS:
            logger.warning("Workspace %s names unknown store %r; using %s", root.name, backend, self.default_store)
            backend = self.default_store
        return WorkspaceInfo(
            name=str(manifest.get("name") or root.name[: -len(SUFFIX)]),
            root=root.resolve(),
            store_backend=backend,
            remote_table=manifest.get("remoteTable") or None,
        )

    def _write_manifest(self, workspace: WorkspaceInfo) -> None:
        payload = {
            "name": workspace.name,
            "store": workspace.store_backend,
            "remoteTable": workspace.remote_table,
            "createdAt": time.time(),
        }
        with open(workspace.root / MANIFEST, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    def _remembered_root(self) -> Optional[Path]:
        state = self._read_json(self.state_path)
        if not state or not state.get("path"):
            return None
        root = Path(state["path"]).expanduser()
        if root.suffix != SUFFIX or not root.is_dir():
            logger.info("Remembered workspace %s is gone", root)
            return None
        return root

    def _remember(self, workspace: WorkspaceInfo) -> None:
        payload = {"path": str(workspace.root), "name": workspace.name, "openedAt": time.time()}
        with open(self.state_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable %s: %s", path, exc)
            return None
        return data if isinstance(data, dict) else None
