#!/usr/bin/env python3

"""
Configuration management for the gene model parser.

Centralized configuration with support for file-based configuration
and environment variable overrides.
"""

import os
import json
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

import yaml

from .exceptions import ConfigurationError


def _as_bool(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes', 'on')


@dataclass
class ParserConfig:
    """Centralized configuration for annotation parsing."""

    # Subfeature toggles
    do_gene: bool = True
    do_exon: bool = True
    do_cds: bool = True
    do_utr: bool = True
    do_codon: bool = True
    do_name: bool = False

    # Assembly options
    share: bool = True
    simplify: bool = False
    fast_gtf_attributes: bool = False
    sort_features: bool = True
    reconcile_to_convergence: bool = False
    source: Optional[str] = None

    # Performance settings
    decode_workers: int = 1
    batch_size: int = 1000
    memory_limit_mb: int = 4096
    enable_memory_monitoring: bool = False

    # Advanced settings
    debug_mode: bool = False

    @classmethod
    def from_file(cls, config_path: str) -> 'ParserConfig':
        """Load configuration from file (JSON or YAML)."""
        return cls.from_dict(cls._read_file(config_path))

    @staticmethod
    def _read_file(config_path: str) -> Dict[str, Any]:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                if config_path.lower().endswith(('.yaml', '.yml')):
                    config_data = yaml.safe_load(f)
                else:
                    config_data = json.load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration file format: {e}")
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid configuration file format: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

        if config_data is None:
            return {}
        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file must hold a mapping: {config_path}")
        return config_data

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ParserConfig':
        """Create configuration from dictionary."""
        # Filter out unknown keys
        known_keys = set(cls.__dataclass_fields__.keys())
        filtered_dict = {k: v for k, v in config_dict.items() if k in known_keys}

        try:
            return cls(**filtered_dict)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration parameters: {e}")

    @classmethod
    def from_env(cls) -> 'ParserConfig':
        """Load configuration from environment variables."""
        config = cls()

        # Map environment variables to config fields
        env_mappings = {
            'GENEMODEL_SHARE': ('share', _as_bool),
            'GENEMODEL_SIMPLIFY': ('simplify', _as_bool),
            'GENEMODEL_DECODE_WORKERS': ('decode_workers', int),
            'GENEMODEL_BATCH_SIZE': ('batch_size', int),
            'GENEMODEL_MEMORY_LIMIT_MB': ('memory_limit_mb', int),
            'GENEMODEL_SORT_FEATURES': ('sort_features', _as_bool),
            'GENEMODEL_DEBUG_MODE': ('debug_mode', _as_bool),
        }

        for env_var, (field_name, converter) in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value:
                try:
                    setattr(config, field_name, converter(env_value))
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Invalid environment variable {env_var}: {e}")

        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def save_to_file(self, config_path: str) -> None:
        """Save configuration to file."""
        config_dict = self.to_dict()

        try:
            with open(config_path, 'w') as f:
                if config_path.lower().endswith(('.yaml', '.yml')):
                    yaml.safe_dump(config_dict, f, default_flow_style=False)
                else:
                    json.dump(config_dict, f, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Error saving configuration: {e}")

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.memory_limit_mb < 100:
            raise ConfigurationError("memory_limit_mb must be >= 100")

        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")

        if self.decode_workers < 1:
            raise ConfigurationError("decode_workers must be >= 1")

        if self.source is not None and not str(self.source).strip():
            raise ConfigurationError("source must not be blank")

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()


def load_config(config_path: Optional[str] = None,
                use_env: bool = True) -> ParserConfig:
    """
    Load configuration with priority: file > environment > defaults.

    Args:
        config_path: Path to configuration file (optional)
        use_env: Whether to load environment variables

    Returns:
        ParserConfig: Loaded configuration
    """
    # Start with defaults
    config = ParserConfig()

    # Override with environment variables if requested
    if use_env:
        env_config = ParserConfig.from_env()
        for field_name in ParserConfig.__dataclass_fields__:
            env_value = getattr(env_config, field_name)
            if env_value != getattr(config, field_name):
                setattr(config, field_name, env_value)

    # Override with the keys the file actually sets
    if config_path:
        file_values = ParserConfig._read_file(config_path)
        file_config = ParserConfig.from_dict(file_values)
        for field_name in ParserConfig.__dataclass_fields__:
            if field_name in file_values:
                setattr(config, field_name, getattr(file_config, field_name))

    config.validate()
    return config
