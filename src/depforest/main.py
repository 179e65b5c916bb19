import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel

from .analyzer import analyze
from .cli_config import (
    ComprehensiveConfig,
    apply_config_data,
    create_sample_config,
    get_config,
    load_config,
    load_config_file,
    validate_config_values,
)
from .error_handling import setup_error_handling
from .model import AnalyzerResult
from .package_manager import PACKAGE_MANAGERS
from .reporting import AnalyzerReporter, create_progress_spinner
from .structured_logging import configure_logging

__version__ = "1.0.0"

console = Console()


def output_json_results(result: AnalyzerResult, output_file: Optional[str] = None) -> None:
    """Export results as JSON."""
    results = result.to_dict()
    results["summary"] = {
        "projects": len(result.results),
        "packages": len(result.packages),
        "failed_projects": len([r for r in result.results if r.failed]),
    }
    results["has_issues"] = result.has_issues

    json_output = json.dumps(results, indent=2, ensure_ascii=False)

    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(json_output)
        Console(stderr=True).print(f"✅ Results saved to {output_file}", style="green")
    else:
        print(json_output)


def _setup_logging(config: ComprehensiveConfig, verbose: bool) -> None:
    log_level = "DEBUG" if verbose else config.logging.log_level
    configure_logging(log_level)
    setup_error_handling(log_level=getattr(logging, log_level.upper(), logging.WARNING))


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    🌲 Depforest: Dependency Forest Analyzer

    Resolves the dependencies of Go modules and Poetry projects into
    per-scope dependency trees.
    """
    if version:
        console.print(f"Depforest version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command("analyze")
@click.argument(
    "path", type=click.Path(exists=True, file_okay=False, readable=True)
)
@click.option(
    "--output-format",
    type=click.Choice(["console", "json"], case_sensitive=False),
    help="Output format for results (default from config or console)",
)
@click.option(
    "--output-file",
    "-o",
    type=click.Path(),
    help="Save results to file (JSON format only)",
)
@click.option(
    "--package-manager",
    "-p",
    "package_managers",
    multiple=True,
    help="Package manager to run, may be repeated (default: all enabled in config)",
)
@click.option(
    "--max-depth",
    type=int,
    default=3,
    help="Maximum depth of the printed dependency trees",
    show_default=True,
)
@click.option(
    "--fail-on-issues",
    is_flag=True,
    help="Exit with error code if any definition file could not be resolved",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file to use instead of the standard locations",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-critical output")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output with debug logging",
)
def analyze_command(
    path: str,
    output_format: Optional[str],
    output_file: Optional[str],
    package_managers: Tuple[str, ...],
    max_depth: int,
    fail_on_issues: bool,
    config_file: Optional[str],
    quiet: bool,
    verbose: bool,
) -> None:
    """
    Analyze the dependencies of all projects below PATH.

    Examples:

      depforest analyze .

      depforest analyze ./service -p GoMod

      depforest analyze . --output-format json -o result.json
    """
    try:
        config = load_config(Path(config_file) if config_file else None)
        _setup_logging(config, verbose)

        final_output_format = (output_format or config.analyzer.output_format).lower()
        final_output_file = output_file or config.analyzer.output_file
        final_fail_on_issues = fail_on_issues or config.analyzer.fail_on_issues

        if final_output_file and final_output_format != "json":
            raise click.ClickException("Output file can only be used with JSON format")
        if max_depth <= 0:
            raise click.ClickException("Max depth must be positive")

        if not quiet and final_output_format == "console":
            console.print(
                Panel(
                    f"🌲 [bold blue]Depforest Dependency Analyzer[/bold blue] v{__version__}",
                    border_style="blue",
                )
            )
            with create_progress_spinner() as progress:
                progress.add_task(f"Analyzing {path}...", total=None)
                result = analyze(Path(path), config, package_managers or None)
        else:
            result = analyze(Path(path), config, package_managers or None)

        if final_output_format == "json":
            output_json_results(result, final_output_file)
        else:
            AnalyzerReporter(console, max_depth=max_depth).print_analyzer_result(
                result, show_trees=not quiet
            )

        if final_fail_on_issues and result.has_issues:
            sys.exit(1)

    except KeyboardInterrupt:
        Console(stderr=True).print("\n⚠️  Analysis interrupted by user", style="yellow")
        sys.exit(130)
    except click.ClickException:
        raise
    except Exception as e:
        if not quiet:
            Console(stderr=True).print(f"❌ Error: {str(e)}", style="red")
        sys.exit(1)


@cli.command()
def info():
    """Show information about supported package managers and usage examples."""
    managers = "\n".join(
        f"• [green]{name}[/green] - {', '.join(factory.globs_for_definition_files)}"
        for name, factory in sorted(PACKAGE_MANAGERS.items())
    )
    info_text = f"""
[bold blue]📋 Supported Package Managers:[/bold blue]

{managers}

[bold blue]🌲 Scopes:[/bold blue]

• [yellow]GoMod main[/yellow] - Modules the main module's packages need to build
• [yellow]GoMod vendor[/yellow] - Modules needed to build and test the main module
• [yellow]Poetry <group>[/yellow] - One scope per Poetry dependency group

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]DEPFOREST_PACKAGE_MANAGERS[/cyan] - Comma separated package managers to run
• [cyan]DEPFOREST_WHY_CHUNK_SIZE[/cyan] - Modules per 'go mod why' call
• [cyan]DEPFOREST_GO_PROXY[/cyan] - Proxy used for Go source artifact URLs
• [cyan]DEPFOREST_PYTHON_VERSION[/cyan] - Python version python-inspector resolves for
• [cyan]DEPFOREST_OPERATING_SYSTEM[/cyan] - Operating system python-inspector resolves for
• [cyan]DEPFOREST_LOG_LEVEL[/cyan] - Log level of the structured logs on stderr

[bold blue]📄 Configuration Files:[/bold blue]

• [green].depforest.json[/green], [green].depforest.yaml[/green] - Project-level config
• [green]~/.config/depforest/config.json[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Analyze a repository
  depforest analyze .

  # Only Go modules
  depforest analyze . -p GoMod

  # JSON output for automation
  depforest analyze . --output-format json -o result.json

  # Generate sample config
  depforest config init
"""
    console.print(
        Panel(
            info_text,
            title="[bold]Depforest Information[/bold]",
            border_style="blue",
        )
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".depforest.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())

        console.print(f"✅ Created configuration file at {config_path}", style="green")
        console.print("Edit this file to customize your settings", style="dim")

    except OSError as e:
        console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(1)


@config.command("show")
def config_show():
    """Show the current configuration settings."""
    current_config = get_config()

    console.print(Panel("[bold blue]🔧 Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]📊 Analyzer Settings:[/bold cyan]")
    console.print(
        f"  Package Managers: {', '.join(current_config.analyzer.enabled_package_managers)}"
    )
    console.print(f"  Output Format: {current_config.analyzer.output_format}")
    console.print(f"  Fail on Issues: {current_config.analyzer.fail_on_issues}")

    console.print("\n[bold cyan]🐹 Go Settings:[/bold cyan]")
    console.print(f"  Why Chunk Size: {current_config.go.why_chunk_size}")
    console.print(f"  Default Proxy: {current_config.go.default_proxy}")
    console.print(f"  Minimum Version: {current_config.go.min_version}")

    console.print("\n[bold cyan]🐍 Python Settings:[/bold cyan]")
    console.print(f"  Python Version: {current_config.python.python_version}")
    console.print(f"  Operating System: {current_config.python.operating_system}")
    console.print(f"  Inspector Command: {current_config.python.inspector_command}")

    console.print("\n[bold cyan]🩹 Curation Providers:[/bold cyan]")
    if not current_config.curations.providers:
        console.print("  None")
    for provider in current_config.curations.providers:
        state = "" if provider.get("enabled", True) else " (disabled)"
        console.print(f"  {provider.get('type')}{state}")

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    config_data = load_config_file(Path(config_file))

    if not isinstance(config_data, dict):
        console.print(f"❌ Could not load config from {config_file}", style="red")
        sys.exit(1)

    candidate = ComprehensiveConfig()
    apply_config_data(candidate, config_data)
    errors = validate_config_values(candidate)

    if errors:
        console.print("❌ Configuration validation failed:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(1)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
