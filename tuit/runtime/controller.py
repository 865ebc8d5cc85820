"""UI controller: key events in, tree/session operations out.

The controller is the only caller of ``FileTreeModel`` mutators and of
``SessionManager.pump``, both on the UI thread. Errors from either are shown
on the status row and never end the loop.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from ..errors import IoError, TuitError
from ..file_tree_model import FileTreeModel
from ..history import HistoryLog, HistoryRecord
from ..keys import KeyComboRegistry, build_registry, next_preset_name, normalize_preset_name
from ..transfer import (
    ConflictChoice,
    ConflictPending,
    Direction,
    Finished,
    SessionManager,
    SessionState,
    TransferSession,
)
from ..ui_theme import UITheme, next_theme_name, resolve_theme
from .config import AppConfig, save_preferences


class Tab(str, Enum):
    SEND = "send"
    RECEIVE = "receive"
    ACTIVE = "active"
    HISTORY = "history"


TAB_ORDER = (Tab.SEND, Tab.RECEIVE, Tab.ACTIVE, Tab.HISTORY)
CONFLICT_CHOICES = (ConflictChoice.RENAME, ConflictChoice.OVERWRITE, ConflictChoice.SKIP, ConflictChoice.CANCEL)
_CHOICE_KEYS = {"r": ConflictChoice.RENAME, "o": ConflictChoice.OVERWRITE, "s": ConflictChoice.SKIP, "c": ConflictChoice.CANCEL}


@dataclass
class ConflictPrompt:
    event: ConflictPending
    choice_index: int = 0
    apply_to_all: bool = False

    @property
    def choice(self) -> ConflictChoice:
        return CONFLICT_CHOICES[self.choice_index]


@dataclass
class AppState:
    tab: Tab = Tab.SEND
    show_help: bool = False
    search_editing: bool = False
    search_query: str = ""
    ticket_input: str = ""
    tree_scroll: int = 0
    active_cursor: int = 0
    history_cursor: int = 0
    page_rows: int = 10
    status: str = ""
    status_is_error: bool = False
    last_send_id: int | None = None
    conflict: ConflictPrompt | None = None
    queued_conflicts: list[ConflictPending] = field(default_factory=list)
    quit: bool = False
    dirty: bool = True


class AppController:
    """Owns ``AppState`` and routes keys for every tab and popup."""

    def __init__(
        self,
        config: AppConfig,
        tree: FileTreeModel,
        manager: SessionManager,
        history: HistoryLog,
        *,
        persist_preferences: Callable[..., AppConfig] = save_preferences,
    ) -> None:
        self.config = config
        self.tree = tree
        self.manager = manager
        self.history = history
        self.state = AppState()
        self._persist_preferences = persist_preferences
        self.theme_name = config.preferences.theme
        self.key_preset = normalize_preset_name(config.preferences.key_preset)
        self._registries: dict[Tab | None, KeyComboRegistry] = {}
        self._rebuild_registries()

    # -- derived ----------------------------------------------------------

    @property
    def theme(self) -> UITheme:
        return resolve_theme(self.theme_name)

    def active_sessions(self) -> list[TransferSession]:
        """Sessions of this run, newest first."""
        return list(reversed(self.manager.sessions()))

    def history_records(self) -> list[HistoryRecord]:
        return self.history.newest_first()

    def selected_session(self) -> TransferSession | None:
        sessions = self.active_sessions()
        if not sessions:
            return None
        return sessions[max(0, min(self.state.active_cursor, len(sessions) - 1))]

    def last_send(self) -> TransferSession | None:
        if self.state.last_send_id is None:
            return None
        return self.manager.get(self.state.last_send_id)

    # -- status -----------------------------------------------------------

    def flash(self, message: str) -> None:
        self.state.status = message
        self.state.status_is_error = False
        self.state.dirty = True

    def flash_error(self, message: str) -> None:
        self.state.status = message
        self.state.status_is_error = True
        self.state.dirty = True

    # -- periodic ---------------------------------------------------------

    def tick(self) -> bool:
        """Apply pending worker events; return True when the screen should repaint."""
        events = self.manager.pump()
        for event in events:
            if isinstance(event, ConflictPending):
                self.state.queued_conflicts.append(event)
            elif isinstance(event, Finished):
                self._announce_finished(event)
        self._advance_conflict_prompt()
        if events or self.manager.live_sessions():
            self.state.dirty = True
        return self.state.dirty

    def _announce_finished(self, event: Finished) -> None:
        session = self.manager.get(event.session_id)
        if session is None:
            return
        label = f"{session.direction.value} #{session.session_id} {session.display_name}"
        if session.state is SessionState.FAILED:
            self.flash_error(f"{label} failed: {session.error}")
        else:
            self.flash(f"{label} {session.state.value}")

    def _advance_conflict_prompt(self) -> None:
        pending = {(c.session_id, c.index) for c in self.manager.pending_conflicts()}
        self.state.queued_conflicts = [c for c in self.state.queued_conflicts if (c.session_id, c.index) in pending]
        prompt = self.state.conflict
        if prompt is not None and (prompt.event.session_id, prompt.event.index) not in pending:
            self.state.conflict = None
        if self.state.conflict is None and self.state.queued_conflicts:
            self.state.conflict = ConflictPrompt(self.state.queued_conflicts.pop(0))
            self.state.dirty = True

    # -- key dispatch -----------------------------------------------------

    def _rebuild_registries(self) -> None:
        preset = self.key_preset
        self._registries = {
            None: build_registry(
                preset,
                {
                    "quit": self.request_quit,
                    "help": self.toggle_help,
                    "next_tab": lambda: self.switch_tab(1),
                    "prev_tab": lambda: self.switch_tab(-1),
                    "cycle_theme": self.cycle_theme,
                    "cycle_key_preset": self.cycle_key_preset,
                },
            ),
            Tab.SEND: build_registry(
                preset,
                {
                    "move_up": lambda: self.move_tree_cursor(-1),
                    "move_down": lambda: self.move_tree_cursor(1),
                    "page_up": lambda: self.move_tree_cursor(-self.state.page_rows),
                    "page_down": lambda: self.move_tree_cursor(self.state.page_rows),
                    "home": lambda: self.move_tree_cursor_to(0),
                    "end": lambda: self.move_tree_cursor_to(len(self.tree.visible_rows()) - 1),
                    "expand": self.expand_cursor,
                    "collapse": self.collapse_cursor,
                    "toggle_select": self.toggle_cursor_selection,
                    "select_all": self.select_all,
                    "clear_selection": self.clear_selection,
                    "search": self.open_search,
                    "next_match": lambda: self.move_search(1),
                    "prev_match": lambda: self.move_search(-1),
                    "send": self.send_selection,
                    "toggle_hidden": self.toggle_hidden,
                    "toggle_symlinks": self.toggle_symlinks,
                    "reload": self.reload_tree,
                },
            ),
            Tab.ACTIVE: build_registry(
                preset,
                {
                    "move_up": lambda: self.move_list_cursor(-1),
                    "move_down": lambda: self.move_list_cursor(1),
                    "home": lambda: self.move_list_cursor(-len(self.manager.sessions())),
                    "end": lambda: self.move_list_cursor(len(self.manager.sessions())),
                    "cancel": self.cancel_selected,
                },
            ),
            Tab.HISTORY: build_registry(
                preset,
                {
                    "move_up": lambda: self.move_list_cursor(-1),
                    "move_down": lambda: self.move_list_cursor(1),
                    "home": lambda: self.move_list_cursor(-len(self.history)),
                    "end": lambda: self.move_list_cursor(len(self.history)),
                    "resend": self.resend_selected,
                },
            ),
        }

    def handle_key(self, key: str) -> bool:
        """Route one key token; returns whether it was consumed."""
        try:
            handled = self._route_key(key)
        except TuitError as exc:
            logger.warning("{}", exc)
            self.flash_error(str(exc))
            return True
        if handled:
            self.state.dirty = True
        return handled

    def _route_key(self, key: str) -> bool:
        if self.state.conflict is not None:
            return self._handle_conflict_key(key)
        if self.state.show_help:
            if key == "CTRL_C":
                return self.request_quit()
            self.state.show_help = False
            return True
        if self.state.tab is Tab.SEND and self.state.search_editing:
            return self._handle_search_key(key)
        if self.state.tab is Tab.RECEIVE:
            return self._handle_ticket_key(key)

        handled = self._registries[None].dispatch(key)
        if handled is None:
            registry = self._registries.get(self.state.tab)
            handled = registry.dispatch(key) if registry is not None else None
        if handled is None and key == "ESC" and self.state.tab is Tab.SEND and self.tree.search_state.active:
            return self.clear_search()
        return bool(handled)

    # -- global actions ---------------------------------------------------

    def request_quit(self) -> bool:
        self.state.quit = True
        return True

    def toggle_help(self) -> bool:
        self.state.show_help = not self.state.show_help
        return True

    def switch_tab(self, step: int) -> bool:
        idx = TAB_ORDER.index(self.state.tab)
        self.state.tab = TAB_ORDER[(idx + step) % len(TAB_ORDER)]
        self.state.search_editing = False
        return True

    def cycle_theme(self) -> bool:
        self.theme_name = next_theme_name(self.theme_name)
        self.config = self._persist_preferences(self.config, theme=self.theme_name)
        self.flash(f"theme: {self.theme_name}")
        return True

    def cycle_key_preset(self) -> bool:
        self.key_preset = next_preset_name(self.key_preset)
        self.config = self._persist_preferences(self.config, key_preset=self.key_preset)
        self._rebuild_registries()
        self.flash(f"keys: {self.key_preset}")
        return True

    # -- send tab ---------------------------------------------------------

    def move_tree_cursor(self, delta: int) -> bool:
        return self.tree.move_cursor(delta) is not None

    def move_tree_cursor_to(self, index: int) -> bool:
        return self.tree.move_cursor_to(index) is not None

    def expand_cursor(self) -> bool:
        node = self.tree.cursor_node()
        if node is None:
            return False
        if not node.is_dir:
            self.tree.toggle_selection(node.node_id)
            return True
        self.tree.toggle_expanded(node.node_id)
        return True

    def collapse_cursor(self) -> bool:
        node = self.tree.cursor_node()
        if node is None:
            return False
        if node.expanded:
            self.tree.collapse(node.node_id)
            return True
        if node.parent_id is not None and node.parent_id != self.tree.root_id:
            self.tree.cursor_id = node.parent_id
            return True
        return False

    def toggle_cursor_selection(self) -> bool:
        node = self.tree.cursor_node()
        if node is None:
            return False
        self.tree.toggle_selection(node.node_id)
        self.tree.move_cursor(1)
        return True

    def select_all(self) -> bool:
        count = self.tree.select_all()
        self.flash(f"selected {count} more item(s)")
        return True

    def clear_selection(self) -> bool:
        self.tree.clear_selection()
        self.flash("selection cleared")
        return True

    def open_search(self) -> bool:
        self.state.search_editing = True
        self.state.search_query = self.tree.search_state.query
        return True

    def clear_search(self) -> bool:
        self.state.search_editing = False
        self.state.search_query = ""
        self.tree.search("")
        return True

    def move_search(self, step: int) -> bool:
        return self.tree.move_search_cursor(step) is not None

    def _handle_search_key(self, key: str) -> bool:
        if key == "ESC":
            return self.clear_search()
        if key == "ENTER":
            self.state.search_editing = False
            return True
        if key in {"UP", "SHIFT_TAB"}:
            return self.move_search(-1)
        if key in {"DOWN", "TAB"}:
            return self.move_search(1)
        if key == "BACKSPACE":
            self.state.search_query = self.state.search_query[:-1]
        elif key == "CTRL_U":
            self.state.search_query = ""
        elif len(key) == 1 and key.isprintable():
            self.state.search_query += key
        else:
            return False
        self.tree.search(self.state.search_query)
        return True

    def send_selection(self) -> bool:
        paths = self.tree.selected_paths()
        session = self.manager.start_send(paths, follow_symlinks=self.tree.follow_symlinks)
        self.state.last_send_id = session.session_id
        if session.is_queued:
            self.flash(f"send #{session.session_id} queued at position {session.queue_position}")
        else:
            self.flash(f"send #{session.session_id}: preparing {len(session.items)} file(s)")
        return True

    def toggle_hidden(self) -> bool:
        errors = self.tree.set_show_hidden(not self.tree.show_hidden)
        self._report_tree_errors(errors)
        self.flash(f"hidden files {'shown' if self.tree.show_hidden else 'hidden'}")
        return True

    def toggle_symlinks(self) -> bool:
        enabled = not self.tree.follow_symlinks
        errors = self.tree.set_follow_symlinks(enabled)
        self.manager.follow_symlinks = enabled
        self._report_tree_errors(errors)
        self.flash(f"follow symlinks {'on' if enabled else 'off'}")
        return True

    def reload_tree(self) -> bool:
        self._report_tree_errors(self.tree.reload())
        return True

    def _report_tree_errors(self, errors: list[IoError]) -> None:
        if errors:
            self.flash_error(f"{len(errors)} director{'y' if len(errors) == 1 else 'ies'} unreadable: {errors[0]}")

    # -- receive tab ------------------------------------------------------

    def _handle_ticket_key(self, key: str) -> bool:
        if key in {"TAB", "SHIFT_TAB"}:
            return self.switch_tab(1 if key == "TAB" else -1)
        if key == "CTRL_C":
            return self.request_quit()
        if key == "ENTER":
            return self.start_receive()
        if key == "ESC" or key == "CTRL_U":
            self.state.ticket_input = ""
            return True
        if key == "BACKSPACE":
            self.state.ticket_input = self.state.ticket_input[:-1]
            return True
        if len(key) == 1 and key.isprintable():
            self.state.ticket_input += key
            return True
        return False

    def start_receive(self) -> bool:
        ticket = self.state.ticket_input.strip()
        if not ticket:
            self.flash_error("paste a ticket first")
            return True
        session = self.manager.start_receive(ticket)
        self.state.ticket_input = ""
        self.flash(f"receive #{session.session_id} into {self.manager.receive_dir}")
        return True

    # -- active / history tabs -------------------------------------------

    def move_list_cursor(self, delta: int) -> bool:
        if self.state.tab is Tab.HISTORY:
            count = len(self.history)
            self.state.history_cursor = max(0, min(max(0, count - 1), self.state.history_cursor + delta))
        else:
            count = len(self.manager.sessions())
            self.state.active_cursor = max(0, min(max(0, count - 1), self.state.active_cursor + delta))
        return True

    def cancel_selected(self) -> bool:
        session = self.selected_session()
        if session is None:
            return False
        if self.manager.cancel(session.session_id):
            self.flash(f"cancelled #{session.session_id}")
        else:
            self.flash(f"#{session.session_id} already {session.state.value}")
        return True

    def resend_selected(self) -> bool:
        records = self.history_records()
        if not records:
            return False
        record = records[max(0, min(self.state.history_cursor, len(records) - 1))]
        session = self.manager.resend(record)
        self.state.last_send_id = session.session_id
        self.flash(f"resending {record.name} as #{session.session_id}")
        return True

    # -- conflict popup ---------------------------------------------------

    def _handle_conflict_key(self, key: str) -> bool:
        prompt = self.state.conflict
        if prompt is None:
            return False
        if key == "CTRL_C":
            return self.request_quit()
        if key in {"a", " "}:
            prompt.apply_to_all = not prompt.apply_to_all
            return True
        if key in {"LEFT", "h"}:
            prompt.choice_index = (prompt.choice_index - 1) % len(CONFLICT_CHOICES)
            return True
        if key in {"RIGHT", "l", "TAB"}:
            prompt.choice_index = (prompt.choice_index + 1) % len(CONFLICT_CHOICES)
            return True
        if key == "ENTER":
            return self.answer_conflict(prompt.choice)
        choice = _CHOICE_KEYS.get(key)
        if choice is not None:
            return self.answer_conflict(choice)
        return False

    def answer_conflict(self, choice: ConflictChoice) -> bool:
        prompt = self.state.conflict
        if prompt is None:
            return False
        event = prompt.event
        self.manager.resolve_conflict(event.session_id, event.index, choice, prompt.apply_to_all)
        self.state.conflict = None
        self._advance_conflict_prompt()
        return True


def session_label(session: TransferSession) -> str:
    arrow = "↑" if session.direction is Direction.SEND else "↓"
    return f"#{session.session_id} {arrow} {session.display_name}"


__all__ = [
    "Tab",
    "TAB_ORDER",
    "CONFLICT_CHOICES",
    "ConflictPrompt",
    "AppState",
    "AppController",
    "session_label",
]
