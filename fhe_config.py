"""Evaluator configuration, loadable from a YAML file.

Example ``fhe_sha256.yaml``::

    partitions: 8        # bit groups per word operation, must divide 32
    max_workers: 8       # worker threads (defaults to partitions)
    log_level: INFO
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from fhe_errors import ConfigError
from fhe_word import WORD_BITS


DEFAULT_PARTITIONS = 8

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_partitions(partitions: Any) -> int:
    """Return ``partitions`` if it is a positive divisor of 32, else raise."""
    if isinstance(partitions, bool) or not isinstance(partitions, int):
        raise ConfigError(f"partitions must be an integer, got {partitions!r}")
    if partitions < 1 or WORD_BITS % partitions != 0:
        raise ConfigError(
            f"partitions must be a positive divisor of {WORD_BITS}, got {partitions}"
        )
    return partitions


@dataclass(frozen=True)
class EvaluatorConfig:
    partitions: int = DEFAULT_PARTITIONS
    max_workers: Optional[int] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        validate_partitions(self.partitions)
        if self.max_workers is not None:
            if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int):
                raise ConfigError(f"max_workers must be an integer, got {self.max_workers!r}")
            if self.max_workers < 1:
                raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if str(self.log_level).upper() not in _LOG_LEVELS:
            raise ConfigError(f"unknown log_level {self.log_level!r}")

    @property
    def workers(self) -> int:
        """Number of worker threads to start."""
        return self.max_workers if self.max_workers is not None else self.partitions

    @property
    def log_level_value(self) -> int:
        return getattr(logging, str(self.log_level).upper())

    def with_overrides(self, **overrides: Any) -> "EvaluatorConfig":
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def config_from_dict(data: Optional[Dict[str, Any]]) -> EvaluatorConfig:
    """Build a config from a parsed mapping, rejecting unknown keys."""
    if data is None:
        return EvaluatorConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"config must be a mapping, got {type(data).__name__}")
    return EvaluatorConfig().with_overrides(**data)


def load_config(path: str) -> EvaluatorConfig:
    """Read an `EvaluatorConfig` from the YAML file at ``path``."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in '{path}': {e}") from e
    return config_from_dict(data)
