"""Interactive prompts for the download command."""

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from novel_retrieval.models import ResumeDecision
from novel_retrieval.resume import ResumeChoice
from novel_retrieval.rules import ExtractionRule, RuleRegistry


class InteractivePrompter:
    """Ask the user which rule to use and what to do with earlier downloads."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def choose_rule(self, registry: RuleRegistry, url: str) -> ExtractionRule | None:
        """Confirm the resolved rule for ``url`` or pick another one."""
        resolved = registry.resolve(url)
        self.console.print()
        if resolved:
            self.console.print(
                f"[green]Matched rule:[/green] {resolved.name} (domain {resolved.domain})"
            )
            if Confirm.ask("Use this rule?", default=True):
                return resolved

        rules = registry.list_rules()
        table = Table(show_header=True)
        table.add_column("#", style="dim", width=3)
        table.add_column("Name", style="cyan")
        table.add_column("Domain")
        table.add_column("Chapter list selector", style="dim")
        table.add_row("0", "none", "-", "Cancel")
        for i, rule in enumerate(rules, 1):
            table.add_row(str(i), rule.name, rule.domain, rule.chapter_list_selector)
        self.console.print(table)

        choice = IntPrompt.ask(
            "Select a rule (0 to cancel)",
            default=0,
            choices=[str(i) for i in range(len(rules) + 1)],
        )
        if choice == 0:
            return None
        return rules[choice - 1]

    def ask_resume(self, decision: ResumeDecision) -> ResumeChoice:
        """Show stored progress and ask whether to resume, restart or stop."""
        if decision.already_complete:
            status = "[green]complete[/green]"
        else:
            status = f"[yellow]{decision.new_total - decision.downloaded} chapters missing[/yellow]"

        self.console.print()
        self.console.print(Panel.fit(
            f"[bold]{decision.title or 'Untitled'}[/bold]\n\n"
            f"Stored chapters:   {decision.downloaded}\n"
            f"Previous total:    {decision.previous_total}\n"
            f"Chapters on site:  {decision.new_total}\n"
            f"Status:            {status}",
            title="Earlier download found",
            border_style="yellow",
        ))

        self.console.print("  1. Resume - keep stored chapters and fetch the rest")
        self.console.print("  2. Restart - download everything into a new record")
        self.console.print("  3. Cancel")
        answer = Prompt.ask("Choose", choices=["1", "2", "3"], default="1")
        return {
            "1": ResumeChoice.RESUME,
            "2": ResumeChoice.RESTART,
            "3": ResumeChoice.CANCEL,
        }[answer]
