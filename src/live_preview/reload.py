"""Decide when workspace changes should reload connected browsers."""

import enum
import logging
from typing import Callable, List, Tuple

from .events import Disposable
from .settings import AutoRefreshMode, SettingsStore
from .workspace import TextDocumentChangeEvent, Workspace

logger = logging.getLogger(__name__)


class ChangeKind(enum.Enum):
    EDIT = "edit"
    SAVE = "save"
    CREATE = "create"
    DELETE = "delete"
    RENAME = "rename"


def should_reload(mode: AutoRefreshMode, kind: ChangeKind, served: bool) -> bool:
    """Apply the reload rules to one change.

    Edits and saves only count for files the content server has sent to a
    browser. Creates, deletes and renames reload under either active mode,
    since the server cannot tell which pages they affect.
    """
    if kind is ChangeKind.EDIT:
        return mode == AutoRefreshMode.ON_ANY_CHANGE and served
    if kind is ChangeKind.SAVE:
        return mode == AutoRefreshMode.ON_SAVE and served
    return mode in (AutoRefreshMode.ON_ANY_CHANGE, AutoRefreshMode.ON_SAVE)


class ReloadPolicy(Disposable):
    """Subscribes to workspace changes and refreshes browsers when they apply."""

    def __init__(
        self,
        workspace: Workspace,
        settings: SettingsStore,
        has_served_file: Callable[[str], bool],
        refresh_browsers: Callable[[], None],
    ):
        super().__init__()
        self._settings = settings
        self._has_served_file = has_served_file
        self._refresh_browsers = refresh_browsers

        self._register(workspace.on_did_change_text_document.event(self._on_edit))
        self._register(workspace.on_did_save_text_document.event(self._on_save))
        self._register(workspace.on_did_create_files.event(self._on_create))
        self._register(workspace.on_did_delete_files.event(self._on_delete))
        self._register(workspace.on_did_rename_files.event(self._on_rename))

    @property
    def mode(self) -> AutoRefreshMode:
        return self._settings.get_config().auto_refresh_mode

    def _apply(self, kind: ChangeKind, served: bool = False) -> None:
        if should_reload(self.mode, kind, served):
            logger.debug(f"Reloading browsers after {kind.value}")
            self._refresh_browsers()

    def _on_edit(self, e: TextDocumentChangeEvent) -> None:
        if e.content_changes:
            self._apply(ChangeKind.EDIT, self._has_served_file(e.path))

    def _on_save(self, path: str) -> None:
        self._apply(ChangeKind.SAVE, self._has_served_file(path))

    def _on_create(self, paths: List[str]) -> None:
        self._apply(ChangeKind.CREATE)

    def _on_delete(self, paths: List[str]) -> None:
        self._apply(ChangeKind.DELETE)

    def _on_rename(self, renames: List[Tuple[str, str]]) -> None:
        self._apply(ChangeKind.RENAME)
