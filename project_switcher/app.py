import logging
import queue
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from logging.handlers import QueueHandler, QueueListener

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.fuzzy import Matcher
from textual.widgets import Input, Label, OptionList
from textual.widgets.option_list import Option

from project_switcher.constants import PICKER_HEADER, POLL_INTERVAL_MS
from project_switcher.services.scanner import CandidateList


def rank_candidates(query: str, labels: Sequence[str]) -> list[int]:
    """Indices of `labels` matching `query`, best match first.

    An empty query keeps every label in its original order; ties keep the
    original order too.
    """
    if not query:
        return list(range(len(labels)))
    matcher = Matcher(query)
    scored = [(matcher.match(label), i) for i, label in enumerate(labels)]
    return [i for score, i in sorted(scored, key=lambda s: -s[0]) if score > 0]


class ProjectPickerApp(App[int | None]):
    """Fuzzy picker over a candidate list that may keep growing while open.

    Exits with the selected candidate's index, or None when aborted.
    """

    DEFAULT_CSS = """
    #picker {
        height: 1fr;
        padding: 0 1;
    }
    #picker-header {
        text-style: bold;
        color: $accent;
    }
    #matches {
        height: 1fr;
        border: none;
    }
    #match-count {
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("escape", "abort", "Abort"),
        Binding("ctrl+c", "abort", "Abort", show=False, priority=True),
        Binding("down", "cursor_down", show=False),
        Binding("ctrl+n", "cursor_down", show=False),
        Binding("up", "cursor_up", show=False),
        Binding("ctrl+p", "cursor_up", show=False),
    ]

    def __init__(self, candidates: CandidateList, header: str = PICKER_HEADER) -> None:
        super().__init__()
        self._candidates = candidates
        self._header = header
        self._rendered_count = 0

    def compose(self) -> ComposeResult:
        with Vertical(id="picker"):
            yield Label(self._header, id="picker-header")
            yield Input(placeholder="Search projects", id="query")
            yield Label("", id="match-count")
            yield OptionList(id="matches")

    def on_mount(self) -> None:
        self._refresh_matches()
        self.set_interval(POLL_INTERVAL_MS / 1000, self._poll_candidates)
        self.query_one("#query", Input).focus()

    def _poll_candidates(self) -> None:
        if len(self._candidates) != self._rendered_count:
            self._refresh_matches(keep_highlight=True)

    def _highlighted_index(self) -> int | None:
        matches = self.query_one("#matches", OptionList)
        if matches.highlighted is None:
            return None
        option = matches.get_option_at_index(matches.highlighted)
        return int(option.id) if option.id is not None else None

    def _refresh_matches(self, keep_highlight: bool = False) -> None:
        records = self._candidates.snapshot()
        labels = [r.full_path for r in records]
        query = self.query_one("#query", Input).value.strip()
        matches = self.query_one("#matches", OptionList)
        keep = self._highlighted_index() if keep_highlight else None

        ranked = rank_candidates(query, labels)
        matcher = Matcher(query) if query else None
        matches.clear_options()
        matches.add_options(
            Option(matcher.highlight(labels[i]) if matcher else labels[i], id=str(i)) for i in ranked
        )
        if ranked:
            matches.highlighted = ranked.index(keep) if keep in ranked else 0
        self._rendered_count = len(records)
        self.query_one("#match-count", Label).update(f"{len(ranked)}/{len(records)}")

    def on_input_changed(self, event: Input.Changed) -> None:
        self._refresh_matches()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.action_select()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        if event.option.id is not None:
            self.exit(int(event.option.id))

    def action_select(self) -> None:
        index = self._highlighted_index()
        if index is not None:
            self.exit(index)

    def action_cursor_down(self) -> None:
        self.query_one("#matches", OptionList).action_cursor_down()

    def action_cursor_up(self) -> None:
        self.query_one("#matches", OptionList).action_cursor_up()

    def action_abort(self) -> None:
        self.exit(None)


@contextmanager
def hold_logging() -> Iterator[None]:
    """Queue log records while the picker owns the terminal, then replay them.

    Records emitted by scanner threads while the app is drawing reach the
    original handlers only after the block exits, in order.
    """
    root = logging.getLogger()
    handlers = root.handlers[:]
    records: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    root.handlers = [QueueHandler(records)]
    try:
        yield
    finally:
        root.handlers = handlers
        listener = QueueListener(records, *handlers, respect_handler_level=True)
        listener.start()
        listener.stop()


def run_picker(candidates: CandidateList, header: str = PICKER_HEADER) -> int | None:
    """Show the picker; returns the chosen candidate index, or None if aborted."""
    with hold_logging():
        return ProjectPickerApp(candidates, header=header).run()
