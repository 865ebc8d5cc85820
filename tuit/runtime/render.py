"""Screen composition for the four tabs plus help and conflict modals.

Rendering is side-effect free apart from clamping ``state.tree_scroll`` and
``state.page_rows`` to the current geometry.
"""

from __future__ import annotations

import time

from ..ansi import display_width, fit_ansi_line, truncate_middle
from ..file_tree_model import NodeKind, TreeRow
from ..history import HistoryRecord
from ..keys import keys_for
from ..transfer import (
    ConnectionStatus,
    Direction,
    ItemState,
    SessionState,
    TransferSession,
    format_duration,
    format_rate,
    format_size,
)
from ..ui_theme import UITheme
from .controller import CONFLICT_CHOICES, TAB_ORDER, AppController, Tab, session_label

PROGRESS_BAR_WIDTH = 20
_KEY_LABELS = {" ": "Space", "CTRL_C": "Ctrl+C", "CTRL_R": "Ctrl+R", "CTRL_U": "Ctrl+U", "CTRL_D": "Ctrl+D"}

HELP_SECTIONS: tuple[tuple[str, tuple[tuple[str, str], ...]], ...] = (
    (
        "GLOBAL",
        (
            ("next_tab", "next tab"),
            ("prev_tab", "previous tab"),
            ("cycle_theme", "cycle theme"),
            ("cycle_key_preset", "cycle key preset"),
            ("help", "help"),
            ("quit", "quit"),
        ),
    ),
    (
        "SEND",
        (
            ("move_up", "up"),
            ("move_down", "down"),
            ("expand", "open dir / select file"),
            ("collapse", "close dir / parent"),
            ("toggle_select", "select"),
            ("select_all", "select all loaded"),
            ("clear_selection", "clear selection"),
            ("search", "search loaded names"),
            ("next_match", "next match"),
            ("prev_match", "previous match"),
            ("send", "send selection"),
            ("toggle_hidden", "hidden files"),
            ("toggle_symlinks", "follow symlinks"),
            ("reload", "reload tree"),
        ),
    ),
    ("ACTIVE", (("cancel", "cancel transfer"),)),
    ("HISTORY", (("resend", "send again"),)),
)


def _key_label(token: str) -> str:
    return _KEY_LABELS.get(token, token.replace("_", " ").title() if len(token) > 1 else token)


def _state_color(theme: UITheme, state: SessionState) -> str:
    if state is SessionState.COMPLETED:
        return theme.state_done
    if state is SessionState.FAILED:
        return theme.state_failed
    if state is SessionState.CANCELLED:
        return theme.state_cancelled
    return theme.state_running


def progress_bar(theme: UITheme, percent: float, width: int = PROGRESS_BAR_WIDTH) -> str:
    filled = max(0, min(width, int(round(width * percent / 100.0))))
    return f"{theme.progress_fill}{'█' * filled}{theme.progress_empty}{'░' * (width - filled)}{theme.reset}"


def render_tab_bar(app: AppController, width: int) -> str:
    theme = app.theme
    parts: list[str] = []
    live = len(app.manager.live_sessions())
    for tab in TAB_ORDER:
        label = tab.value.title()
        if tab is Tab.ACTIVE and live:
            label = f"{label} ({live})"
        style = theme.tab_active + theme.reverse if tab is app.state.tab else theme.tab_inactive
        parts.append(f"{style} {label} {theme.reset}")
    status = app.manager.aggregate_connection()
    badge = {
        ConnectionStatus.READY: "ready",
        ConnectionStatus.CONNECTING: "connecting…",
        ConnectionStatus.DIRECT: "direct",
        ConnectionStatus.RELAYED: "relayed",
    }[status]
    if app.config.is_incognito:
        badge = f"incognito · {badge}"
    left = " ".join(parts)
    gap = max(1, width - display_width(left) - len(badge) - 1)
    return f"{left}{' ' * gap}{theme.divider}{badge}{theme.reset}"


def _tree_row_text(app: AppController, row: TreeRow, width: int) -> str:
    theme = app.theme
    marker = f"{theme.tree_selected}[x]{theme.reset}" if row.selected else "[ ]"
    if row.is_dir:
        arrow = "▾" if row.expanded else "▸"
    else:
        arrow = " "
    name = row.path.name
    if row.kind is NodeKind.SYMLINK:
        color = theme.tree_symlink
        name = f"{name}@"
    elif row.is_dir:
        color = theme.tree_dir
        name = f"{name}/"
    else:
        color = theme.tree_file
    if row.matched:
        color = theme.tree_search_hit
    suffix = ""
    if row.error is not None:
        suffix = f" {theme.tree_error}({row.error}){theme.reset}"
    size = f"{theme.size}{format_size(row.size)}{theme.reset}" if row.size is not None and not row.is_dir else ""
    left = f"{'  ' * row.depth}{marker} {arrow} {color}{name}{theme.reset}{suffix}"
    gap = max(1, width - display_width(left) - display_width(size))
    return f"{left}{' ' * gap}{size}"


def render_send_tab(app: AppController, width: int, height: int) -> list[str]:
    theme = app.theme
    tree = app.tree
    lines: list[str] = []
    flags = []
    if tree.show_hidden:
        flags.append("hidden")
    if tree.follow_symlinks:
        flags.append("symlinks")
    flag_text = f" [{', '.join(flags)}]" if flags else ""
    root_label = truncate_middle(str(tree.root_dir), max(10, width // 2))
    lines.append(f"{theme.divider}{root_label}{theme.reset}  selected: {len(tree.selected)}{flag_text}")

    send = app.last_send()
    if send is not None and send.ticket and not send.is_terminal:
        lines.append(f"ticket #{send.session_id}: {theme.help_key}{send.ticket}{theme.reset}")

    search = tree.search_state
    if app.state.search_editing or search.active:
        cursor = "█" if app.state.search_editing else ""
        count = f"{search.cursor + 1}/{len(search.matches)}" if search.matches else "no matches"
        query = app.state.search_query if app.state.search_editing else search.query
        lines.append(f"{theme.help_key}/{theme.reset}{query}{cursor}  {theme.help_dim}{count}{theme.reset}")

    rows = tree.visible_rows()
    view_rows = max(1, height - len(lines))
    app.state.page_rows = max(1, view_rows - 1)
    if not rows:
        lines.append(f"{theme.help_dim}(empty directory){theme.reset}")
        return lines

    cursor_idx = tree.cursor_index(rows)
    scroll = app.state.tree_scroll
    if cursor_idx < scroll:
        scroll = cursor_idx
    elif cursor_idx >= scroll + view_rows:
        scroll = cursor_idx - view_rows + 1
    scroll = max(0, min(scroll, max(0, len(rows) - view_rows)))
    app.state.tree_scroll = scroll

    for idx in range(scroll, min(len(rows), scroll + view_rows)):
        text = _tree_row_text(app, rows[idx], width)
        if rows[idx].node_id == tree.cursor_id:
            text = f"{theme.reverse}{fit_ansi_line(text, width)}{theme.reset}"
        lines.append(text)
    return lines


def session_line(app: AppController, session: TransferSession, width: int) -> str:
    theme = app.theme
    color = _state_color(theme, session.state)
    state_label = session.state.value
    if session.is_queued:
        state_label = f"queued #{session.queue_position}"
    elif session.state is SessionState.ACTIVE and session.connection is not None:
        state_label = f"active ({session.connection.value})"
    details = f"{format_size(session.transferred_bytes)}/{format_size(session.total_bytes)}"
    if session.state is SessionState.ACTIVE:
        details += f"  {format_rate(session.rate_bps)}  eta {format_duration(session.eta_seconds)}"
    elif session.is_terminal:
        details += f"  {format_duration(session.elapsed_seconds)}"
    label = truncate_middle(session_label(session), max(12, width // 3))
    return (
        f"{label}  {color}{state_label}{theme.reset}  "
        f"{progress_bar(theme, session.progress_percent)} {session.progress_percent:5.1f}%  {details}"
    )


def _item_lines(app: AppController, session: TransferSession, width: int, limit: int) -> list[str]:
    theme = app.theme
    lines: list[str] = []
    for item in session.items[:limit]:
        mark = {
            ItemState.PENDING: " ",
            ItemState.WAITING: "?",
            ItemState.ACTIVE: "»",
            ItemState.DONE: "✓",
            ItemState.SKIPPED: "-",
            ItemState.FAILED: "✗",
        }[item.state]
        text = f"  {mark} {item.name}  {theme.size}{format_size(item.size)}{theme.reset}"
        if item.error:
            text += f"  {theme.tree_error}{item.error}{theme.reset}"
        lines.append(text)
    hidden = len(session.items) - limit
    if hidden > 0:
        lines.append(f"  {theme.help_dim}… {hidden} more{theme.reset}")
    return lines


def render_active_tab(app: AppController, width: int, height: int) -> list[str]:
    theme = app.theme
    sessions = app.active_sessions()
    if not sessions:
        return [f"{theme.help_dim}no transfers yet: select files on the Send tab or paste a ticket on Receive{theme.reset}"]
    lines: list[str] = []
    cursor = max(0, min(app.state.active_cursor, len(sessions) - 1))
    list_rows = max(1, height // 2)
    start = max(0, cursor - list_rows + 1)
    for idx in range(start, min(len(sessions), start + list_rows)):
        text = session_line(app, sessions[idx], width)
        if idx == cursor:
            text = f"{theme.reverse}{fit_ansi_line(text, width)}{theme.reset}"
        lines.append(text)

    selected = sessions[cursor]
    lines.append(f"{theme.divider}{'─' * width}{theme.reset}")
    if selected.ticket:
        lines.append(f"ticket: {theme.help_key}{selected.ticket}{theme.reset}")
    if selected.error:
        lines.append(f"{theme.status_error}error: {selected.error}{theme.reset}")
    remaining = max(1, height - len(lines))
    lines.extend(_item_lines(app, selected, width, max(1, remaining - 1)))
    return lines


def render_receive_tab(app: AppController, width: int, height: int) -> list[str]:
    theme = app.theme
    lines = [
        f"{theme.help_heading}Paste a ticket and press Enter{theme.reset}",
        f"ticket: {app.state.ticket_input}█",
        f"{theme.help_dim}receive into: {app.manager.receive_dir}{theme.reset}",
        f"{theme.help_dim}on conflict: {app.manager.conflict_mode.value}"
        f" ({app.manager.ask_scope.value.replace('_', ' ')}){theme.reset}",
        "",
    ]
    receives = [s for s in app.active_sessions() if s.direction is Direction.RECEIVE]
    for session in receives[: max(0, height - len(lines))]:
        lines.append(session_line(app, session, width))
    return lines


def _history_line(app: AppController, record: HistoryRecord, width: int) -> str:
    theme = app.theme
    color = _state_color(theme, record.state)
    when = time.strftime("%Y-%m-%d %H:%M", time.localtime(record.ended_at)) if record.ended_at else "-"
    arrow = "↑" if record.direction is Direction.SEND else "↓"
    name = truncate_middle(record.name, max(12, width // 3))
    return (
        f"{when}  {arrow} {name}  {record.file_count} file(s)  {format_size(record.total_bytes)}  "
        f"{color}{record.state.value}{theme.reset}  {format_duration(record.duration_seconds)}"
    )


def render_history_tab(app: AppController, width: int, height: int) -> list[str]:
    theme = app.theme
    records = app.history_records()
    if not records:
        note = "no finished transfers yet"
        if app.history.path is None:
            note += " (kept in memory only)"
        return [f"{theme.help_dim}{note}{theme.reset}"]
    cursor = max(0, min(app.state.history_cursor, len(records) - 1))
    list_rows = max(1, height // 2)
    start = max(0, cursor - list_rows + 1)
    lines: list[str] = []
    for idx in range(start, min(len(records), start + list_rows)):
        text = _history_line(app, records[idx], width)
        if idx == cursor:
            text = f"{theme.reverse}{fit_ansi_line(text, width)}{theme.reset}"
        lines.append(text)

    record = records[cursor]
    lines.append(f"{theme.divider}{'─' * width}{theme.reset}")
    if record.error:
        lines.append(f"{theme.status_error}error: {record.error}{theme.reset}")
    for entry in record.files:
        lines.append(f"  {entry.name}  {theme.size}{format_size(entry.size)}{theme.reset}")
    if record.additional_files:
        lines.append(f"  {theme.help_dim}… {record.additional_files} more{theme.reset}")
    return lines


def render_help_lines(app: AppController) -> list[str]:
    theme = app.theme
    lines = [f"{theme.modal_title}Keys ({app.key_preset}){theme.reset}", ""]
    for heading, actions in HELP_SECTIONS:
        lines.append(f"{theme.help_heading}{heading}{theme.reset}")
        for action, description in actions:
            keys = "/".join(_key_label(token) for token in keys_for(app.key_preset, action))
            lines.append(f"  {theme.help_key}{keys:<14}{theme.reset} {description}")
        lines.append("")
    lines.append(f"{theme.help_dim}press any key to close{theme.reset}")
    return lines


def render_conflict_lines(app: AppController) -> list[str]:
    theme = app.theme
    prompt = app.state.conflict
    if prompt is None:
        return []
    event = prompt.event
    existing = event.existing
    stamp = time.strftime("%Y-%m-%d %H:%M", time.localtime(existing.mtime_ns / 1e9)) if existing.mtime_ns else "-"
    choices = []
    for idx, choice in enumerate(CONFLICT_CHOICES):
        label = f"[{choice.value[0]}]{choice.value[1:]}"
        choices.append(f"{theme.reverse}{label}{theme.reset}" if idx == prompt.choice_index else label)
    return [
        f"{theme.modal_title}File already exists{theme.reset}",
        "",
        f"incoming: {event.name}",
        f"at:       {event.destination}",
        f"existing: {format_size(existing.size)}, modified {stamp}",
        "",
        "  ".join(choices),
        f"[a] apply to all remaining: {'yes' if prompt.apply_to_all else 'no'}",
    ]


def _overlay(lines: list[str], modal: list[str], width: int, theme: UITheme) -> list[str]:
    inner = min(width - 4, max(display_width(line) for line in modal) + 2)
    if inner <= 0:
        return lines
    box = [f"{theme.modal_border}┌{'─' * inner}┐{theme.reset}"]
    for line in modal:
        box.append(f"{theme.modal_border}│{theme.reset}{fit_ansi_line(' ' + line, inner)}{theme.modal_border}│{theme.reset}")
    box.append(f"{theme.modal_border}└{'─' * inner}┘{theme.reset}")
    top = max(1, (len(lines) - len(box)) // 2)
    left = max(0, (width - inner - 2) // 2)
    out = list(lines)
    for offset, row in enumerate(box):
        idx = top + offset
        if idx >= len(out):
            break
        out[idx] = " " * left + row
    return out


def render_status_row(app: AppController, width: int) -> str:
    theme = app.theme
    if app.state.status:
        color = theme.status_error if app.state.status_is_error else theme.status_message
        return f"{color}{app.state.status}{theme.reset}"
    hint = "?: help  Tab: switch tab  q: quit"
    if app.state.tab is Tab.RECEIVE:
        hint = "Enter: receive  Esc: clear  Tab: switch tab  Ctrl+C: quit"
    return f"{theme.help_dim}{hint}{theme.reset}"


def render_screen(app: AppController, width: int, height: int) -> list[str]:
    """Compose exactly ``height`` rows of at most ``width`` columns."""
    width = max(20, width)
    height = max(5, height)
    body_height = height - 2
    renderers = {
        Tab.SEND: render_send_tab,
        Tab.RECEIVE: render_receive_tab,
        Tab.ACTIVE: render_active_tab,
        Tab.HISTORY: render_history_tab,
    }
    body = renderers[app.state.tab](app, width, body_height)[:body_height]
    body.extend([""] * (body_height - len(body)))
    lines = [render_tab_bar(app, width), *body, render_status_row(app, width)]
    if app.state.conflict is not None:
        lines = _overlay(lines, render_conflict_lines(app), width, app.theme)
    elif app.state.show_help:
        lines = _overlay(lines, render_help_lines(app), width, app.theme)
    return [fit_ansi_line(line, width) for line in lines]


__all__ = [
    "HELP_SECTIONS",
    "progress_bar",
    "render_tab_bar",
    "render_send_tab",
    "render_receive_tab",
    "render_active_tab",
    "render_history_tab",
    "render_help_lines",
    "render_conflict_lines",
    "render_status_row",
    "session_line",
    "render_screen",
]
