"""
Configuration management for the NaPTAN stops pipeline.

Resolves the run inputs (source, destination, prefix filter, spatial index
toggle) once, at the launcher, and hands them to the build as an explicit
BuildOptions value.

Usage:
    from naptan2sqlite.config.settings import Config
    config = Config()
    options = config.build_options(prefix="all")

Environment Variables:
    NAPTAN_SOURCE: Access-nodes CSV URL or local path
    SHEFFIELD_DATA_DIR: Data root; output defaults to <root>/data/buses/stops.sqlite
    NAPTAN_OUT: Explicit output path (overrides the data root default)
    NAPTAN_ATCO_PREFIX: ATCO code prefix to keep, or 'all' / '*' for no filtering
    NAPTAN_USE_RTREE: Build the R*Tree spatial index (true/false)
    NAPTAN_BATCH_SIZE: Stops per insert transaction
    STAGING_RETENTION_HOURS: Age after which abandoned staging dirs are removed
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..domain.models import BATCH_SIZE, BuildOptions
from ..utils import load_yaml_file

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "https://naptan.api.dft.gov.uk/v1/access-nodes?dataFormat=csv"
DEFAULT_ATCO_PREFIX = "370"

# Prefix values that disable filtering
NO_PREFIX_SENTINELS = ("all", "*")

# Output location relative to the data root
DEFAULT_OUT_RELATIVE = Path("data") / "buses" / "stops.sqlite"

# Keys accepted in a YAML config file
YAML_KEYS = ("source", "out", "prefix", "use_rtree", "batch_size")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


def parse_prefix(value: Optional[str]) -> Optional[str]:
    """Turn a prefix setting into a literal prefix, or None for no filtering."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() in NO_PREFIX_SENTINELS:
        return None
    return value


def parse_bool(value: Any, name: str) -> bool:
    """Parse a boolean setting from YAML or environment text."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be true or false, got {value!r}")


def parse_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass
class SourceConfig:
    """Access-nodes CSV source configuration."""
    source: str

    def __post_init__(self):
        """Validate source configuration."""
        if not self.source or not self.source.strip():
            raise ValueError("Source cannot be empty")


@dataclass
class OutputConfig:
    """Destination database configuration."""
    data_dir: Path
    out_path: Path

    def __post_init__(self):
        """Validate output configuration."""
        if self.out_path.name in ("", ".", ".."):
            raise ValueError(f"Output path must name a file: {self.out_path}")
        if self.out_path.exists() and self.out_path.is_dir():
            raise ValueError(f"Output path is a directory: {self.out_path}")


@dataclass
class LoadConfig:
    """Row filtering and load configuration."""
    atco_prefix: Optional[str] = DEFAULT_ATCO_PREFIX
    use_rtree: bool = True
    batch_size: int = BATCH_SIZE

    def __post_init__(self):
        """Validate load configuration."""
        if self.batch_size < 1:
            raise ValueError("Batch size must be positive")


@dataclass
class TempConfig:
    """Staging directory housekeeping configuration."""
    retention_hours: int = 24

    def __post_init__(self):
        """Validate temp management configuration."""
        if self.retention_hours < 0:
            raise ValueError("Retention hours must be non-negative")


class Config:
    """
    Centralized configuration for the stops pipeline.

    Settings are resolved in order of preference:
    1. Keyword overrides passed to build_options() (CLI flags)
    2. YAML file passed to the constructor
    3. Explicit environment file passed to the constructor
    4. .env.{ENVIRONMENT}, then .env, in the project root
    5. System environment variables
    6. Built-in defaults

    Example:
        # Defaults from environment
        config = Config()

        # YAML overrides with an explicit env file
        config = Config(env_file=Path("/secure/production.env"), yaml_file=Path("stops.yml"))
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None,
                 yaml_file: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            environment: Target environment (development|staging|production)
            env_file: Explicit path to environment file
            yaml_file: Optional YAML file with source/out/prefix/use_rtree/batch_size

        Raises:
            ConfigurationError: If any setting is missing or invalid
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = self._find_project_root()

        self._load_environment_variables(env_file)
        self._yaml = self._load_yaml(yaml_file)

        self._load_source_config()
        self._load_output_config()
        self._load_load_config()
        self._load_temp_config()

    def _find_project_root(self) -> Path:
        """Find project root directory containing pyproject.toml or .git, else the working directory."""
        current = Path(__file__).resolve()

        for parent in current.parents:
            if any((parent / marker).exists() for marker in ['pyproject.toml', '.git']):
                return parent

        return Path.cwd()

    def _load_environment_variables(self, env_file: Optional[Path]) -> None:
        """Load environment variables from appropriate source."""
        loaded_files = []

        if env_file:
            if env_file.exists():
                load_dotenv(env_file)
                loaded_files.append(str(env_file))
                logger.info(f"Loaded configuration from {env_file}")
            else:
                raise ConfigurationError(f"Specified env file not found: {env_file}")

        else:
            env_specific_file = self.project_root / f".env.{self.environment}"
            if env_specific_file.exists():
                load_dotenv(env_specific_file)
                loaded_files.append(str(env_specific_file))
                logger.info(f"Loaded environment-specific config: {env_specific_file}")

            generic_env_file = self.project_root / ".env"
            if generic_env_file.exists():
                load_dotenv(generic_env_file)
                loaded_files.append(str(generic_env_file))
                logger.debug(f"Loaded generic config: {generic_env_file}")

        if not loaded_files:
            logger.debug("No .env files found, using system environment variables only")

        self._loaded_env_files = loaded_files

    def _load_yaml(self, yaml_file: Optional[Path]) -> dict[str, Any]:
        """Load and check the optional YAML config file."""
        if yaml_file is None:
            return {}

        try:
            data = load_yaml_file(yaml_file)
        except (FileNotFoundError, ValueError) as e:
            raise ConfigurationError(str(e))

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"YAML config must be a mapping: {yaml_file}")

        unknown = sorted(set(data) - set(YAML_KEYS))
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in {yaml_file}: {', '.join(unknown)}. "
                f"Allowed: {', '.join(YAML_KEYS)}"
            )

        logger.info(f"Loaded YAML config: {yaml_file}")
        return data

    def _setting(self, yaml_key: str, env_key: str, default: Any) -> Any:
        """YAML value, else environment value, else default."""
        if yaml_key in self._yaml and self._yaml[yaml_key] is not None:
            return self._yaml[yaml_key]
        return os.getenv(env_key, default)

    def _load_source_config(self) -> None:
        """Load source configuration."""
        try:
            self.source = SourceConfig(
                source=str(self._setting("source", "NAPTAN_SOURCE", DEFAULT_SOURCE))
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid source configuration: {e}")

    def _load_output_config(self) -> None:
        """Load output configuration with the data root default."""
        data_dir = Path(os.getenv("SHEFFIELD_DATA_DIR") or self.project_root)
        out = self._setting("out", "NAPTAN_OUT", None)
        out_path = Path(out) if out else data_dir / DEFAULT_OUT_RELATIVE

        try:
            self.output = OutputConfig(data_dir=data_dir, out_path=out_path)
        except ValueError as e:
            raise ConfigurationError(f"Invalid output configuration: {e}")

    def _load_load_config(self) -> None:
        """Load prefix filter, spatial index and batch settings."""
        prefix = self._setting("prefix", "NAPTAN_ATCO_PREFIX", DEFAULT_ATCO_PREFIX)
        use_rtree = parse_bool(self._setting("use_rtree", "NAPTAN_USE_RTREE", "true"), "use_rtree")
        batch_size = parse_int(self._setting("batch_size", "NAPTAN_BATCH_SIZE", BATCH_SIZE), "batch_size")

        try:
            self.load = LoadConfig(
                atco_prefix=parse_prefix(str(prefix)),
                use_rtree=use_rtree,
                batch_size=batch_size
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid load configuration: {e}")

    def _load_temp_config(self) -> None:
        """Load staging housekeeping configuration."""
        retention_hours = parse_int(os.getenv("STAGING_RETENTION_HOURS", "24"), "STAGING_RETENTION_HOURS")

        try:
            self.temp = TempConfig(retention_hours=retention_hours)
        except ValueError as e:
            raise ConfigurationError(f"Invalid temp management configuration: {e}")

    def build_options(self,
                      source: Optional[str] = None,
                      out: Optional[Path] = None,
                      prefix: Optional[str] = None,
                      use_rtree: Optional[bool] = None,
                      batch_size: Optional[int] = None) -> BuildOptions:
        """
        Resolve the BuildOptions for one run.

        Arguments left as None fall back to the loaded configuration.

        Raises:
            ConfigurationError: If the combined options are invalid
        """
        try:
            return BuildOptions(
                source=source or self.source.source,
                out_path=Path(out) if out else self.output.out_path,
                atco_prefix=parse_prefix(prefix) if prefix is not None else self.load.atco_prefix,
                use_rtree=self.load.use_rtree if use_rtree is None else use_rtree,
                batch_size=batch_size or self.load.batch_size,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid build options: {e}")

    def get_load_settings(self) -> dict[str, Any]:
        """
        Get load configuration settings as dictionary.

        Returns:
            Dictionary of prefix, spatial index and batch settings
        """
        return {
            'atco_prefix': self.load.atco_prefix,
            'use_rtree': self.load.use_rtree,
            'batch_size': self.load.batch_size
        }

    def __repr__(self) -> str:
        return (
            f"Config(environment={self.environment}, "
            f"out={self.output.out_path}, "
            f"prefix={self.load.atco_prefix or 'all'})"
        )
