"""
Reporting and output formatting for analyzer results.

Provides console output using the Rich library.
"""

from typing import List, Optional, Set

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.tree import Tree

from .dependency import Identifier, PackageReference, Scope
from .model import AnalyzerResult, ProjectAnalyzerResult

DEFAULT_TREE_DEPTH = 3


class AnalyzerReporter:
    """Formats and displays analyzer results."""

    def __init__(self, console: Optional[Console] = None, max_depth: int = DEFAULT_TREE_DEPTH):
        self.console = console or Console()
        self.max_depth = max_depth

    def print_analyzer_result(self, result: AnalyzerResult, show_trees: bool = True) -> None:
        """
        Print analyzer results in a user-friendly format.

        Args:
            result: The analyzer result to display
            show_trees: Whether to print the dependency tree of every scope
        """
        self.console.print()
        self._print_header(result)

        if not result.results:
            self.console.print("No definition files found to analyze.", style="yellow")
            return

        self._print_summary(result)

        for project_result in result.results:
            if project_result.failed:
                self._print_issues(project_result)
            elif show_trees:
                self._print_project(project_result)

        self._print_footer(result)

    def _print_header(self, result: AnalyzerResult) -> None:
        self.console.print(
            Panel(
                f"Dependency analysis: {result.analysis_root}",
                title="[bold blue]Depforest[/bold blue]",
                border_style="blue",
            )
        )

    def _print_summary(self, result: AnalyzerResult) -> None:
        """Print one row per analyzed definition file."""
        table = Table(title="Projects", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("Definition File", style="bold")
        table.add_column("Project")
        table.add_column("Scopes")
        table.add_column("Packages", justify="right")
        table.add_column("Status", justify="center")

        for project_result in result.results:
            project = project_result.project
            status = (
                "[bold red]FAILED[/bold red]" if project_result.failed else "[green]OK[/green]"
            )
            table.add_row(
                project.definition_file_path,
                project.id.name,
                ", ".join(project.scope_names) or "-",
                str(len(project_result.packages)),
                status,
            )

        self.console.print(table)
        self.console.print()

    def _print_project(self, project_result: ProjectAnalyzerResult) -> None:
        project = project_result.project
        tree = Tree(f"[bold]{project.id}[/bold] [dim]({project.definition_file_path})[/dim]")
        for scope in sorted(project.scopes, key=lambda s: s.name):
            self._add_scope(tree, scope)
        self.console.print(tree)
        self.console.print()

    def _add_scope(self, tree: Tree, scope: Scope) -> None:
        count = len(scope.collect_identifiers())
        branch = tree.add(f"[cyan]{scope.name}[/cyan] [dim]({count} packages)[/dim]")
        for ref in sorted(scope.dependencies, key=lambda r: r.id):
            self._add_reference(branch, ref, 1, set())

    def _add_reference(
        self, branch: Tree, ref: PackageReference, depth: int, seen: Set[Identifier]
    ) -> None:
        node = branch.add(_format_identifier(ref.id))
        if not ref.dependencies:
            return
        if depth >= self.max_depth:
            node.add(f"[dim]... {ref.count_nodes() - 1} more[/dim]")
            return
        # Already expanded on this path.
        if ref.id in seen:
            return
        for child in sorted(ref.dependencies, key=lambda r: r.id):
            self._add_reference(node, child, depth + 1, seen | {ref.id})

    def _print_issues(self, project_result: ProjectAnalyzerResult) -> None:
        issue_text = "\n".join(f"• {issue}" for issue in project_result.issues)
        self.console.print(
            Panel(
                issue_text,
                title=f"[bold red]Issues: {project_result.project.definition_file_path}[/bold red]",
                border_style="red",
            )
        )
        self.console.print()

    def _print_footer(self, result: AnalyzerResult) -> None:
        duration_seconds = result.duration_ms / 1000
        failed: List[ProjectAnalyzerResult] = [r for r in result.results if r.failed]

        self.console.print(
            f"[dim]Analyzed {len(result.results)} definition files with "
            f"{len(result.packages)} distinct packages in {duration_seconds:.2f} seconds[/dim]"
        )

        if failed:
            self.console.print(
                f"\n[bold red]{len(failed)} definition file(s) could not be resolved.[/bold red]"
            )
        else:
            self.console.print("\n[bold green]All definition files resolved.[/bold green]")


def _format_identifier(pkg_id: Identifier) -> str:
    version = f" [dim]{pkg_id.version}[/dim]" if pkg_id.version else ""
    namespace = f"{pkg_id.namespace}/" if pkg_id.namespace else ""
    return f"{namespace}{pkg_id.name}{version}"


def create_progress_spinner(console: Optional[Console] = None) -> Progress:
    """Create a progress spinner for long-running operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console or Console(stderr=True),
        transient=True,
    )
