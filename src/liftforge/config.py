"""Configuration management for LiftForge.

This module handles loading, validating, and providing access to
LiftForge configuration settings. Configuration can come from:
- Default values
- Configuration files (YAML)
- Environment variables
- Command-line arguments (applied by the CLI on top of the above)

Example:
    >>> from liftforge.config import Config
    >>> config = Config.load("liftforge.yaml")
    >>> config.projection.padding
    50
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import attrs
import yaml

from liftforge.exceptions import ConfigurationError

# =============================================================================
# Default Configuration Values
# =============================================================================

# Projection defaults
DEFAULT_PADDING = 50  # Bases added on each side of the source transcript
DEFAULT_CLADE = "human"
DEFAULT_METHOD_LINK_TYPE = "LASTZ_NET"
DEFAULT_HIMEM_MAX_MEMORY_GB = 32.0

# Filter defaults; filtering is off unless a kind is configured
COVERAGE_IDENTITY_FILTER = "coverage_identity"
DEFAULT_FILTER_KIND: str | None = None
DEFAULT_MIN_COVERAGE = 50.0
DEFAULT_MIN_PERCENT_ID = 50.0

# Environment overrides: variable -> (section, field, converter)
ENV_OVERRIDES = {
    "LIFTFORGE_CESAR_PATH": ("projection", "cesar_path", str),
    "LIFTFORGE_SCRATCH_DIR": ("projection", "scratch_dir", str),
    "LIFTFORGE_MAX_MEMORY_GB": ("projection", "max_memory_gb", float),
}


# =============================================================================
# Configuration Classes
# =============================================================================


@attrs.define
class ProjectionConfig:
    """Configuration for transcript projection.

    Attributes:
        padding: Bases added to each side of the source transcript window.
        clade: CESAR clade/model parameter.
        cesar_path: Directory containing the ``cesar`` binary ("" = PATH).
        max_memory_gb: Memory bound passed to CESAR (None = no bound).
        himem_max_memory_gb: Memory bound used on the high-memory lane.
        scratch_dir: Directory for per-transcript scratch files.
        canonical: Project only the canonical transcript of each gene.
        common_slice: Place all transcripts of a gene on one shared region.
        method_link_type: Whole-genome alignment method name.
        fewest_gaps: Resolve multi-record aligner output by fewest gaps
            instead of failing.
    """

    padding: int = DEFAULT_PADDING
    clade: str = DEFAULT_CLADE
    cesar_path: str = ""
    max_memory_gb: float | None = None
    himem_max_memory_gb: float = DEFAULT_HIMEM_MAX_MEMORY_GB
    scratch_dir: str = "."
    canonical: bool = False
    common_slice: bool = False
    method_link_type: str = DEFAULT_METHOD_LINK_TYPE
    fewest_gaps: bool = True


@attrs.define
class FilterConfig:
    """Configuration for the projected transcript quality filter.

    Attributes:
        kind: Registered filter kind (None disables filtering).
        min_coverage: Minimum coverage of the source protein (0-100).
        min_percent_id: Minimum percent identity to the source protein (0-100).
    """

    kind: str | None = DEFAULT_FILTER_KIND
    min_coverage: float = DEFAULT_MIN_COVERAGE
    min_percent_id: float = DEFAULT_MIN_PERCENT_ID


@attrs.define
class Config:
    """Main configuration container for LiftForge.

    Attributes:
        projection: Projection configuration.
        filter: Quality filter configuration.
    """

    projection: ProjectionConfig = attrs.Factory(ProjectionConfig)
    filter: FilterConfig = attrs.Factory(FilterConfig)

    @classmethod
    def load(cls, path: Path | str | None = None) -> Config:
        """Load configuration from a YAML file.

        Args:
            path: Path to configuration file.
                  If None, returns default configuration.

        Returns:
            Loaded configuration object.

        Raises:
            ConfigurationError: If the file is missing or invalid.
        """
        if path is None:
            return cls()

        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration file {path}: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Create configuration from a nested dictionary.

        Unknown sections and keys are rejected.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a mapping of sections")

        sections = {"projection": ProjectionConfig, "filter": FilterConfig}
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        kwargs = {}
        for name, section_cls in sections.items():
            values = data.get(name) or {}
            try:
                kwargs[name] = section_cls(**values)
            except TypeError as e:
                raise ConfigurationError(f"Invalid [{name}] parameters: {e}") from e

        config = cls(**kwargs)
        config.validate()
        return config

    def apply_env(self, environ: dict[str, str] | None = None) -> Config:
        """Apply LIFTFORGE_* environment variable overrides in place."""
        environ = os.environ if environ is None else environ
        for var, (section, field, converter) in ENV_OVERRIDES.items():
            value = environ.get(var)
            if not value:
                continue
            try:
                setattr(getattr(self, section), field, converter(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid environment variable {var}: {e}") from e
        return self

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: On the first invalid value.
        """
        if self.projection.padding < 0:
            raise ConfigurationError("padding must be >= 0")
        if self.projection.max_memory_gb is not None and self.projection.max_memory_gb <= 0:
            raise ConfigurationError("max_memory_gb must be > 0")
        if self.projection.himem_max_memory_gb <= 0:
            raise ConfigurationError("himem_max_memory_gb must be > 0")
        for name in ("min_coverage", "min_percent_id"):
            value = getattr(self.filter, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be between 0 and 100")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration.
        """
        return attrs.asdict(self)

    def save(self, path: Path | str) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to save configuration file.
        """
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
