"""
Analysis of a whole repository: finds definition files, resolves each of them
with the matching package manager and applies package curations.
"""

import time
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from .cli_config import ComprehensiveConfig, get_config
from .command_line_tool import CommandLineTool
from .curation import apply_curations, create_curation_providers
from .error_handling import CommandError, ConfigurationError, ErrorCategory, get_error_handler
from .model import AnalyzerResult
from .package_manager import get_package_manager_factory

# Importing the backends registers their factories.
from . import go_mod, poetry  # noqa: F401


def analyze(
    analysis_root: Path,
    config: Optional[ComprehensiveConfig] = None,
    package_managers: Optional[Sequence[str]] = None,
    check_versions: bool = True,
) -> AnalyzerResult:
    """
    Analyze all definition files below the given root.

    Args:
        analysis_root: Directory to search for definition files
        config: Configuration, the global one if omitted
        package_managers: Names of the backends to run, all enabled ones if omitted
        check_versions: Whether to verify the tool versions before resolving

    Returns:
        AnalyzerResult with one result per definition file; failed projects
        carry issues instead of aborting the whole analysis

    Raises:
        ValueError: If an unknown package manager is requested
        ConfigurationError: If the curation providers cannot be created
    """
    config = config or get_config()
    analysis_root = Path(analysis_root).resolve()
    started = time.monotonic()

    names = list(package_managers or config.analyzer.enabled_package_managers)
    factories = [get_package_manager_factory(name) for name in names]

    try:
        curation_providers = create_curation_providers(config.curations.providers)
    except ConfigurationError as e:
        get_error_handler().error(
            ErrorCategory.CURATION,
            f"Invalid curation provider configuration: {e}",
            "analyzer",
            "analyze",
            exception=e,
        )
        raise

    result = AnalyzerResult(analysis_root=str(analysis_root))

    for factory in factories:
        definition_files = factory.find_definition_files(analysis_root)
        if not definition_files:
            continue

        with factory.create(analysis_root, config) as manager:
            definition_files = manager.map_definition_files(definition_files)
            if not definition_files:
                continue

            if check_versions and isinstance(manager, CommandLineTool):
                try:
                    manager.check_version(analysis_root)
                except (CommandError, ConfigurationError) as e:
                    get_error_handler().error(
                        ErrorCategory.EXTERNAL_TOOL,
                        f"{manager.manager_name} is not usable: {e}",
                        "analyzer",
                        "analyze",
                        exception=e,
                    )
                    result.results.extend(
                        manager.failed_result(manager.relative_path(path), e)
                        for path in definition_files
                    )
                    continue

            for definition_file in definition_files:
                result.results.extend(manager.resolve(definition_file))

    if curation_providers:
        result.results = [
            replace(
                project_result,
                packages=frozenset(apply_curations(project_result.packages, curation_providers)),
            )
            for project_result in result.results
        ]

    result.duration_ms = int((time.monotonic() - started) * 1000)
    return result
