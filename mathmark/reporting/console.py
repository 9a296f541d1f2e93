"""
Console reporting for assertion runs.

Prints one line per assertion outcome, then a summary table and, for
coverage runs, a per-document coverage table.
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from mathmark.coverage.tracker import FileCoverage
from mathmark.discovery.models import AssertionNode, DocumentNode, Node, NodeKind
from mathmark.runtime.scheduler import BaseRunListener, RunSummary, TestRun


class ConsoleReporter(BaseRunListener):
    """Run listener rendering progress with rich."""

    def __init__(self, console: Console | None = None, verbose: bool = False):
        """
        Initialize the reporter.

        Args:
            console: Console to print to
            verbose: Also print the scheduler's output lines
        """
        self.console = console or Console()
        self.verbose = verbose
        self._coverage: list[FileCoverage] = []

    def on_output(self, run: TestRun, text: str) -> None:
        if self.verbose:
            self.console.print(f"[dim]{text}[/dim]")

    def on_skipped(self, run: TestRun, node: AssertionNode) -> None:
        self.console.print(f"  [yellow]○[/yellow] {escape(node.label)} [dim](skipped)[/dim]")

    def on_passed(self, run: TestRun, node: AssertionNode, duration_ms: int) -> None:
        self.console.print(f"  [green]✓[/green] {escape(node.label)} [dim]line {node.line + 1}[/dim]")

    def on_failed(self, run: TestRun, node: AssertionNode, message: str, duration_ms: int) -> None:
        self.console.print(f"  [red]✗[/red] {escape(node.label)} [dim]line {node.line + 1}[/dim]")
        self.console.print(f"    [red]{escape(message)}[/red]")

    def on_coverage(self, run: TestRun, coverage: FileCoverage) -> None:
        self._coverage.append(coverage)

    def on_ended(self, run: TestRun, summary: RunSummary) -> None:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Passed", style="green")
        table.add_column("Failed", style="red")
        table.add_column("Skipped", style="yellow")
        table.add_column("Total")
        table.add_row(
            str(summary.passed),
            str(summary.failed),
            str(summary.skipped),
            str(len(summary.results)),
        )
        self.console.print(table)

        if self._coverage:
            coverage_table = Table(show_header=True, header_style="bold")
            coverage_table.add_column("Document", style="cyan")
            coverage_table.add_column("Covered")
            coverage_table.add_column("Total")
            coverage_table.add_column("Percentage")
            for file_coverage in self._coverage:
                coverage_table.add_row(
                    escape(file_coverage.document_id),
                    str(file_coverage.covered),
                    str(file_coverage.total),
                    f"{file_coverage.coverage_percentage:.1f}%",
                )
            self.console.print(coverage_table)
            self._coverage = []

        if summary.cancelled:
            self.console.print("[yellow]⚠ Run cancelled[/yellow]")


def render_tree(documents: list[DocumentNode]) -> Tree:
    """Build a rich tree of documents, sections and assertions."""
    root = Tree("[bold]Assertions[/bold]")

    def add(branch: Tree, node: Node) -> None:
        if node.kind == NodeKind.ASSERTION:
            branch.add(f"{escape(node.label)} [dim]line {node.line + 1}[/dim]")
            return
        if node.kind == NodeKind.SECTION:
            child = branch.add(f"[cyan]{escape(node.label)}[/cyan]")
        else:
            label = f"[bold blue]{escape(node.label)}[/bold blue]"
            if node.error:
                label += f" [red]({escape(node.error)})[/red]"
            child = branch.add(label)
        for grandchild in node.children:
            add(child, grandchild)

    for document in documents:
        add(root, document)
    return root
