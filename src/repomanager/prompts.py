from __future__ import annotations

from typing import Protocol, Sequence, TextIO

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table


class Prompter(Protocol):
    """Interactive input capabilities the reconciler consumes."""

    def ask_text(self, prompt: str) -> str: ...

    def ask_select_one(self, prompt: str, options: Sequence[str]) -> str: ...

    def ask_select_many(self, prompt: str, options: Sequence[str], defaults: Sequence[str]) -> list[str]: ...

    def ask_confirm(self, prompt: str, default: bool = False) -> bool: ...


def _parse_indices(answer: str, count: int) -> list[int] | None:
    """
    Parse ``1,3-4`` style answers into zero-based indices.
    Returns None if any part is malformed or out of range.
    """
    indices: list[int] = []
    for raw_part in answer.replace(" ", ",").split(","):
        part = raw_part.strip()
        if not part:
            continue
        if "-" in part:
            start_s, _, end_s = part.partition("-")
            if not (start_s.isdigit() and end_s.isdigit()):
                return None
            start, end = int(start_s), int(end_s)
            if start > end:
                return None
            span = range(start, end + 1)
        elif part.isdigit():
            span = range(int(part), int(part) + 1)
        else:
            return None
        for number in span:
            if not 1 <= number <= count:
                return None
            if number - 1 not in indices:
                indices.append(number - 1)
    return indices


class RichPrompter:
    """Terminal prompts built on rich.prompt. Blocks until the user answers."""

    def __init__(self, console: Console | None = None, stream: TextIO | None = None) -> None:
        self.console = console or Console()
        self.stream = stream

    def ask_text(self, prompt: str) -> str:
        return Prompt.ask(prompt, console=self.console, default="", show_default=False, stream=self.stream)

    def ask_select_one(self, prompt: str, options: Sequence[str]) -> str:
        if not options:
            raise ValueError("no options to choose from")
        self._print_options(options)
        numbers = [str(i) for i in range(1, len(options) + 1)]
        answer = Prompt.ask(
            prompt, console=self.console, choices=numbers, show_choices=False, stream=self.stream,
        )
        return options[int(answer) - 1]

    def ask_select_many(self, prompt: str, options: Sequence[str], defaults: Sequence[str]) -> list[str]:
        if not options:
            return []
        default_set = set(defaults)
        self._print_options(options, selected=default_set)
        self.console.print("  [dim]numbers or ranges (e.g. 1,3-4), enter to keep marked, 'none' for empty[/dim]")

        while True:
            answer = Prompt.ask(
                prompt, console=self.console, default="", show_default=False, stream=self.stream,
            ).strip()
            if not answer:
                return [o for o in options if o in default_set]
            if answer.lower() == "none":
                return []
            indices = _parse_indices(answer, len(options))
            if indices is not None:
                return [options[i] for i in sorted(indices)]
            self.console.print(f"[red]error:[/red] invalid selection: {escape(answer)}")

    def ask_confirm(self, prompt: str, default: bool = False) -> bool:
        return Confirm.ask(prompt, console=self.console, default=default, stream=self.stream)

    def _print_options(self, options: Sequence[str], selected: set[str] | None = None) -> None:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column(justify="right", style="dim")
        if selected is not None:
            table.add_column()
        table.add_column()
        for number, option in enumerate(options, start=1):
            row = [str(number)]
            if selected is not None:
                row.append("[green]✓[/green]" if option in selected else "[dim]·[/dim]")
            row.append(escape(option))
            table.add_row(*row)
        self.console.print(table)
