# ========================
# csv2arrow/utils/config.py
# ========================

"""
Configuration Management

Centralized configuration for the ingestion pipeline with environment support.
Every option of a run lives here; a run is fully determined by its input file
and its Config.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ..pipeline.errors import ConfigurationError
from ..pipeline.schema import parse_type_spec

_SET_OPTIONS = ('MISSING_TOKENS', 'COLUMNS_TO_DROP', 'CATEGORICAL_COLUMNS')
_MAPPING_OPTIONS = ('COLUMN_MISSING_TOKENS', 'COLUMN_TYPE_OVERRIDES')


def _env_list(name: str, default: str) -> list:
    """Read a '|'-separated list; tokens may legitimately contain commas."""
    raw = os.getenv(name, default)
    return raw.split('|') if raw else []


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def _env_json(name: str) -> dict:
    raw = os.getenv(name)
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{name} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a JSON object")
    return value


class Config:
    """
    Configuration class for the ingestion pipeline.
    Supports environment variables and default values.
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_dict (dict): Optional configuration overrides
        """
        # Reading
        self.DELIMITER = os.getenv('CSV2ARROW_DELIMITER', ',')
        self.HAS_HEADER = _env_bool('CSV2ARROW_HAS_HEADER', 'true')
        self.ENCODING = os.getenv('CSV2ARROW_ENCODING', 'utf-8-sig')
        self.CHUNK_SIZE = _env_int('CSV2ARROW_CHUNK_SIZE', '10000')

        # Missing values and types
        self.MISSING_TOKENS = set(_env_list('CSV2ARROW_MISSING_TOKENS', '|NA|N/A'))
        self.COLUMN_MISSING_TOKENS = _env_json('CSV2ARROW_COLUMN_MISSING_TOKENS')
        self.DATE_PATTERN = os.getenv('CSV2ARROW_DATE_PATTERN', '%m/%d/%Y %I:%M:%S %p')
        self.TIMESTAMP_ERROR_POLICY = os.getenv('CSV2ARROW_TIMESTAMP_ERROR_POLICY', 'raise')
        self.COLUMN_TYPE_OVERRIDES = _env_json('CSV2ARROW_COLUMN_TYPE_OVERRIDES')

        # Normalization
        self.NORMALIZE_NAMES = _env_bool('CSV2ARROW_NORMALIZE_NAMES', 'true')
        self.STRIP_WHITESPACE = _env_bool('CSV2ARROW_STRIP_WHITESPACE', 'true')
        self.DOWNCAST_INTEGERS = _env_bool('CSV2ARROW_DOWNCAST_INTEGERS', 'true')
        self.DOWNCAST_FLOATS = _env_bool('CSV2ARROW_DOWNCAST_FLOATS', 'true')

        # Redundancy and encoding
        self.COLUMNS_TO_DROP = set(_env_list('CSV2ARROW_COLUMNS_TO_DROP', ''))
        self.DICTIONARY_CARDINALITY_THRESHOLD = _env_int('CSV2ARROW_CARDINALITY_THRESHOLD', '50')
        self.CATEGORICAL_COLUMNS = set(_env_list('CSV2ARROW_CATEGORICAL_COLUMNS', ''))

        # Output
        self.COMPRESSION_CODEC = os.getenv('CSV2ARROW_COMPRESSION', 'none')
        self.RECORD_BATCH_SIZE = _env_int('CSV2ARROW_RECORD_BATCH_SIZE', '65536')

        # Logging Configuration
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

        # Override with provided config
        if config_dict:
            self._update_from_dict(config_dict)

    def _update_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        unknown = []
        for key, value in config_dict.items():
            attr = key.upper()
            if not hasattr(self, attr):
                unknown.append(key)
                continue
            if attr in _SET_OPTIONS and value is not None:
                # A lone string is one token, not a sequence of characters
                value = {value} if isinstance(value, str) else set(value)
            if attr in _MAPPING_OPTIONS and value is not None:
                value = dict(value)
            setattr(self, attr, value)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

    def validate_config(self) -> Dict[str, bool]:
        """
        Validate configuration values.

        Returns:
            dict: Validation results for each setting
        """
        validations = {}

        validations['delimiter'] = isinstance(self.DELIMITER, str) and len(self.DELIMITER) == 1
        validations['chunk_size'] = self.CHUNK_SIZE > 0
        validations['record_batch_size'] = self.RECORD_BATCH_SIZE > 0
        validations['cardinality_threshold'] = self.DICTIONARY_CARDINALITY_THRESHOLD >= 0
        validations['compression_codec'] = str(self.COMPRESSION_CODEC).lower() in ('none', 'lz4', 'zstd')
        validations['timestamp_error_policy'] = self.TIMESTAMP_ERROR_POLICY in ('raise', 'missing')
        validations['date_pattern'] = isinstance(self.DATE_PATTERN, str) and '%' in self.DATE_PATTERN
        validations['missing_tokens'] = all(isinstance(t, str) for t in self.MISSING_TOKENS)

        try:
            for spec in self.COLUMN_TYPE_OVERRIDES.values():
                parse_type_spec(spec)
            validations['column_type_overrides'] = True
        except ConfigurationError:
            validations['column_type_overrides'] = False

        # Validate log level
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        validations['log_level'] = str(self.LOG_LEVEL).upper() in valid_log_levels

        return validations

    def ensure_valid(self) -> None:
        """Raise ConfigurationError naming every setting that failed validation."""
        failed = [name for name, ok in self.validate_config().items() if not ok]
        if failed:
            raise ConfigurationError(f"Invalid configuration settings: {failed}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            attr: getattr(self, attr)
            for attr in dir(self)
            if attr.isupper() and not callable(getattr(self, attr))
        }

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file."""
        data = {
            key: sorted(value, key=str) if isinstance(value, set) else value
            for key, value in self.to_dict().items()
        }
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)

    @classmethod
    def load_from_file(cls, file_path) -> 'Config':
        """Load configuration from JSON file."""
        path = Path(file_path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                config_dict = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration file {path} is not valid JSON: {e}") from e
        return cls(config_dict)

    def __str__(self) -> str:
        """String representation of configuration."""
        lines = ["Configuration Settings:"]
        config_dict = self.to_dict()
        for key, value in sorted(config_dict.items()):
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)
