"""Workspace folders and the stream of file change notifications."""

import asyncio
import logging
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from watchfiles import Change, awatch

from .events import EventEmitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkspaceFolder:
    """A folder opened as a workspace root."""

    path: pathlib.Path
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "path", pathlib.Path(self.path).resolve())
        if not self.name:
            object.__setattr__(self, "name", self.path.name)


@dataclass(frozen=True)
class TextDocumentChangeEvent:
    """An unsaved edit to an open document."""

    path: str
    content_changes: List[str] = field(default_factory=list)


class Workspace:
    """Emits edit, save, create, delete and rename notifications."""

    def __init__(self):
        self.on_did_change_text_document: EventEmitter[TextDocumentChangeEvent] = (
            EventEmitter("did_change_text_document")
        )
        self.on_did_save_text_document: EventEmitter[str] = EventEmitter(
            "did_save_text_document"
        )
        self.on_did_create_files: EventEmitter[List[str]] = EventEmitter(
            "did_create_files"
        )
        self.on_did_delete_files: EventEmitter[List[str]] = EventEmitter(
            "did_delete_files"
        )
        self.on_did_rename_files: EventEmitter[List[Tuple[str, str]]] = EventEmitter(
            "did_rename_files"
        )

    def notify_edit(self, path: str, content_changes: List[str]) -> None:
        """Report an in-editor edit (used by editor integrations)."""
        self.on_did_change_text_document.fire(
            TextDocumentChangeEvent(path, list(content_changes))
        )

    def notify_save(self, path: str) -> None:
        self.on_did_save_text_document.fire(path)

    def notify_changes(self, changes: Set[Tuple[Change, str]]) -> None:
        """Translate one batch of file system changes into notifications.

        A batch with exactly one deletion and one addition in the same
        directory is a rename. A modified file was both edited and saved.
        """
        added = sorted(path for change, path in changes if change == Change.added)
        deleted = sorted(path for change, path in changes if change == Change.deleted)
        modified = sorted(
            path for change, path in changes if change == Change.modified
        )

        if (
            len(added) == 1
            and len(deleted) == 1
            and pathlib.Path(added[0]).parent == pathlib.Path(deleted[0]).parent
        ):
            self.on_did_rename_files.fire([(deleted[0], added[0])])
        else:
            if added:
                self.on_did_create_files.fire(added)
            if deleted:
                self.on_did_delete_files.fire(deleted)

        for path in modified:
            self.notify_edit(path, [Change.modified.raw_str()])
            self.notify_save(path)

    def dispose(self) -> None:
        for emitter in (
            self.on_did_change_text_document,
            self.on_did_save_text_document,
            self.on_did_create_files,
            self.on_did_delete_files,
            self.on_did_rename_files,
        ):
            emitter.dispose()


class FileWatcher:
    """Feed a `Workspace` from file system changes under `root`."""

    def __init__(
        self,
        workspace: Workspace,
        root: pathlib.Path,
        ignore: Optional[List[str]] = None,
    ):
        self.workspace = workspace
        self.root = root
        self.ignore = ignore or [".git", "__pycache__", "node_modules"]
        self._stop_event = asyncio.Event()

    def _is_ignored(self, path: str) -> bool:
        return any(part in self.ignore for part in pathlib.Path(path).parts)

    async def watch(self) -> None:
        """Watch until `stop()` is called."""
        logger.info(f"Watching {self.root} for changes")
        async for changes in awatch(self.root, stop_event=self._stop_event):
            relevant = {
                (change, path) for change, path in changes if not self._is_ignored(path)
            }
            if relevant:
                logger.debug(f"File changes: {sorted(p for _, p in relevant)}")
                self.workspace.notify_changes(relevant)

    def stop(self) -> None:
        self._stop_event.set()
