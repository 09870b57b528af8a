"""
Progress bar handling for spot-fetcher using Rich library.

Usage:
    from spot_fetcher.core.progress import AcquisitionProgressBar

    with AcquisitionProgressBar(total=len(tracks)) as progress:
        for outcome in orchestrator.iter_run(tracks):
            progress.update(outcome.status)
"""

from typing import Optional

from rich import get_console
from rich.console import JustifyMethod, OverflowMethod
from rich.highlighter import Highlighter
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    Task,
    TaskID,
)
from rich.style import StyleType
from rich.text import Text
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})


class SizedTextColumn(ProgressColumn):
    """
    Text column truncated with an ellipsis past a fixed width.
    """

    def __init__(
        self,
        text_format: str,
        style: StyleType = "none",
        justify: JustifyMethod = "left",
        markup: bool = True,
        highlighter: Optional[Highlighter] = None,
        overflow: Optional[OverflowMethod] = None,
        width: int = 20,
    ) -> None:
        self.text_format = text_format
        self.justify: JustifyMethod = justify
        self.style = style
        self.markup = markup
        self.highlighter = highlighter
        self.overflow: Optional[OverflowMethod] = overflow
        self.width = width
        super().__init__()

    def render(self, task: Task) -> Text:
        """Render the column."""
        _text = self.text_format.format(task=task)
        if self.markup:
            text = Text.from_markup(_text, style=self.style, justify=self.justify)
        else:
            text = Text(_text, style=self.style, justify=self.justify)
        if self.highlighter:
            self.highlighter.highlight(text)

        text.truncate(max_width=self.width, overflow=self.overflow, pad=True)
        return text


class AcquisitionProgressBar:
    """
    Progress bar for the acquisition loop.

    Displays:
    - Description (e.g., "Downloading")
    - Status: ✓ fetched, ✗ failed, ? no match, ⊘ skipped
    - Progress bar
    - Percentage

    Example:
        Downloading     ✓ 12  ✗ 1  ? 2  ⊘ 30   ━━━━━━━━━━━━━━━━━  64%
    """

    def __init__(self, total: int, description: str = "Downloading", status_width: int = 35):
        self.total = total
        self.description = description
        self.completed = 0
        self.fetched = 0
        self.failed = 0
        self.no_match = 0
        self.skipped = 0

        self.console = get_console()

        self.progress = Progress(
            SizedTextColumn(
                "[white]{task.description}",
                overflow="ellipsis",
                width=15,
            ),
            SizedTextColumn(
                "{task.fields[status]}",
                width=status_width,
                style="white",
            ),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: Optional[TaskID] = None
        self._started = False

    def __enter__(self) -> "AcquisitionProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        """Start the progress bar (can be called manually)."""
        if not self._started:
            self.console.push_theme(PROGRESS_THEME)
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                status=self._get_status_text(),
            )
            self._started = True

    def stop(self) -> None:
        """Stop the progress bar and restore the console theme."""
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def _get_status_text(self) -> str:
        parts = [
            f"[green]✓ {self.fetched}[/green]",
            f"[red]✗ {self.failed}[/red]",
        ]
        if self.no_match > 0:
            parts.append(f"[cyan]? {self.no_match}[/cyan]")
        if self.skipped > 0:
            parts.append(f"[yellow]⊘ {self.skipped}[/yellow]")
        return "  ".join(parts)

    def update(self, status: str) -> None:
        """
        Record one finished track.

        Args:
            status: The track outcome value ('fetched', 'skipped',
                    'no-match' or 'failed').
        """
        self.completed += 1
        if status == "fetched":
            self.fetched += 1
        elif status == "skipped":
            self.skipped += 1
        elif status == "no-match":
            self.no_match += 1
        else:
            self.failed += 1

        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )
