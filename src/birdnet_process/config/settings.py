"""
Configuration Management for BirdNET Processing
===============================================
Analysis defaults with environment variable and YAML/JSON file support.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from birdnet_process.core.records import NOCALL_LABEL
from birdnet_process.ingestion.birdnet_files import DEFAULT_PATTERN

logger = logging.getLogger(__name__)


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else None


@dataclass
class AnalysisConfig:
    """Settings shared by the activity, summary and chart commands."""
    confidence_threshold: float = 0.5
    unit: str = "hour"
    n_top_species: int = 10
    facet_by: Optional[str] = None

    # Site location for day/night shading
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tz: str = "UTC"

    nocall_label: str = NOCALL_LABEL
    file_pattern: str = DEFAULT_PATTERN
    log_level: str = "INFO"

    def __post_init__(self):
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}")
        if self.n_top_species < 1:
            raise ValueError(f"n_top_species must be at least 1, got {self.n_top_species}")

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        """Load configuration from ``BIRDNET_*`` environment variables."""
        return cls(
            confidence_threshold=float(os.environ.get("BIRDNET_CONFIDENCE", "0.5")),
            unit=os.environ.get("BIRDNET_UNIT", "hour"),
            n_top_species=int(os.environ.get("BIRDNET_TOP_SPECIES", "10")),
            facet_by=os.environ.get("BIRDNET_FACET_BY") or None,
            latitude=_env_float("BIRDNET_LATITUDE"),
            longitude=_env_float("BIRDNET_LONGITUDE"),
            tz=os.environ.get("BIRDNET_TZ", "UTC"),
            nocall_label=os.environ.get("BIRDNET_NOCALL_LABEL", NOCALL_LABEL),
            file_pattern=os.environ.get("BIRDNET_FILE_PATTERN", DEFAULT_PATTERN),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "AnalysisConfig":
        """Load configuration from YAML or JSON file."""
        config_path = Path(config_path)
        with open(config_path, "r") as f:
            if config_path.suffix in [".yaml", ".yml"]:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls._from_dict(data or {})

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """Build configuration from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration to dictionary."""
        return asdict(self)

    def save(self, config_path: Union[str, Path]):
        """Save configuration to file."""
        config_path = Path(config_path)
        data = self.to_dict()

        with open(config_path, "w") as f:
            if config_path.suffix in [".yaml", ".yml"]:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(data, f, indent=2)


# Default configuration template
DEFAULT_CONFIG_YAML = f"""
# BirdNET Processing Configuration
# ================================

confidence_threshold: 0.5
unit: hour            # e.g. "10 min", "2 hours", day, week, month
n_top_species: 10
facet_by: null        # e.g. Site

# Site location for night shading (requires astral)
latitude: null
longitude: null
tz: UTC               # IANA name of the recorder's local time zone

nocall_label: {NOCALL_LABEL}
file_pattern: '{DEFAULT_PATTERN}'
log_level: INFO
"""


def create_default_config(config_path: Union[str, Path]) -> Path:
    """Create default configuration file."""
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        f.write(DEFAULT_CONFIG_YAML)

    logger.info(f"Created default configuration at {config_path}")
    return config_path
