"""
Configuration management for depforest.

Provides configurable settings for the analyzer, the package manager backends,
package curations and logging.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

DEFAULT_GO_PROXY = "https://proxy.golang.org"


@dataclass
class AnalyzerConfig:
    """Which package managers run and how results are reported."""

    enabled_package_managers: List[str] = field(
        default_factory=lambda: ["GoMod", "Poetry"]
    )
    fail_on_issues: bool = False
    output_format: str = "console"
    output_file: Optional[str] = None


@dataclass
class GoConfig:
    """Settings of the Go modules backend."""

    # Number of modules per 'go mod why' call, bounds the command line length.
    why_chunk_size: int = 32
    default_proxy: str = DEFAULT_GO_PROXY
    min_version: str = "1.21.1"


@dataclass
class PythonConfig:
    """Settings of the Poetry backend and the python-inspector it runs."""

    python_version: str = "3.11"
    operating_system: str = "linux"
    inspector_command: str = "python-inspector"


@dataclass
class CurationConfig:
    """
    Package curation providers, highest priority first.

    Each entry is a mapping with 'type', 'enabled' and a provider specific
    'config' mapping, e.g. {"type": "File", "config": {"path": "curations.yml"}}.
    """

    providers: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging and error handling configuration."""

    log_level: str = "WARNING"


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    go: GoConfig = field(default_factory=GoConfig)
    python: PythonConfig = field(default_factory=PythonConfig)
    curations: CurationConfig = field(default_factory=CurationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Global configuration instance
_global_config: Optional[ComprehensiveConfig] = None

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if config.go.why_chunk_size <= 0:
        errors.append("go.why_chunk_size must be positive")
    if not config.go.default_proxy.startswith(("http://", "https://")):
        errors.append("go.default_proxy must be an http(s) URL")
    if not all(part.isdigit() for part in config.go.min_version.split(".")):
        errors.append("go.min_version must be a dotted numeric version")

    if config.analyzer.output_format not in ("console", "json"):
        errors.append("analyzer.output_format must be 'console' or 'json'")
    if not config.analyzer.enabled_package_managers:
        errors.append("analyzer.enabled_package_managers must not be empty")

    for index, provider in enumerate(config.curations.providers):
        if not isinstance(provider, dict) or "type" not in provider:
            errors.append(f"curations.providers[{index}] must be a mapping with a 'type'")

    if config.logging.log_level.upper() not in _VALID_LOG_LEVELS:
        errors.append(f"logging.log_level must be one of {sorted(_VALID_LOG_LEVELS)}")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON or YAML file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            if config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(
            f"⚠️  Error loading config from {config_path}: {e}", style="yellow"
        )

    return None


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".depforest.json",
        Path.cwd() / ".depforest.yaml",
        Path.cwd() / ".depforest.yml",
        Path.home() / ".config" / "depforest" / "config.json",
        Path.home() / ".config" / "depforest" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Apply DEPFOREST_* environment variable overrides."""

    def get_env_int(key: str) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else None
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return None

    if chunk_size := get_env_int("DEPFOREST_WHY_CHUNK_SIZE"):
        config.go.why_chunk_size = chunk_size
    if go_proxy := os.environ.get("DEPFOREST_GO_PROXY"):
        config.go.default_proxy = go_proxy

    if python_version := os.environ.get("DEPFOREST_PYTHON_VERSION"):
        config.python.python_version = python_version
    if operating_system := os.environ.get("DEPFOREST_OPERATING_SYSTEM"):
        config.python.operating_system = operating_system

    if managers := os.environ.get("DEPFOREST_PACKAGE_MANAGERS"):
        config.analyzer.enabled_package_managers = [
            name.strip() for name in managers.split(",") if name.strip()
        ]

    if log_level := os.environ.get("DEPFOREST_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )


def apply_config_data(config: ComprehensiveConfig, file_config: Dict[str, Any]) -> None:
    """Apply all known sections of a parsed config file."""
    sections = {
        "analyzer": config.analyzer,
        "go": config.go,
        "python": config.python,
        "curations": config.curations,
        "logging": config.logging,
    }
    for name, section in sections.items():
        if isinstance(file_config.get(name), dict):
            apply_config_section(section, file_config[name], name)


def load_config(config_path: Optional[Path] = None) -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None and config_path is None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = config_path or find_config_file()
    if config_file:
        file_config = load_config_file(config_file)
        if file_config:
            apply_config_data(config, file_config)

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        config = _with_defaults_for_invalid(config)

    _global_config = config
    return config


def _with_defaults_for_invalid(config: ComprehensiveConfig) -> ComprehensiveConfig:
    defaults = ComprehensiveConfig()
    if config.go.why_chunk_size <= 0:
        config.go.why_chunk_size = defaults.go.why_chunk_size
    if not config.go.default_proxy.startswith(("http://", "https://")):
        config.go.default_proxy = defaults.go.default_proxy
    if not all(part.isdigit() for part in config.go.min_version.split(".")):
        config.go.min_version = defaults.go.min_version
    if config.analyzer.output_format not in ("console", "json"):
        config.analyzer.output_format = defaults.analyzer.output_format
    if not config.analyzer.enabled_package_managers:
        config.analyzer.enabled_package_managers = defaults.analyzer.enabled_package_managers
    config.curations.providers = [
        provider
        for provider in config.curations.providers
        if isinstance(provider, dict) and "type" in provider
    ]
    if config.logging.log_level.upper() not in _VALID_LOG_LEVELS:
        config.logging.log_level = defaults.logging.log_level
    return config


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample configuration file."""
    sample_config = ComprehensiveConfig().to_dict()
    sample_config["curations"]["providers"] = [
        {"type": "File", "enabled": True, "config": {"path": "curations.yml"}}
    ]
    return json.dumps(sample_config, indent=2)
