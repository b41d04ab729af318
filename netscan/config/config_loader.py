"""
Configuration loader for netscan.
Handles loading and validation of the YAML configuration file with fallback to defaults.
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..core.data_models import DEFAULT_PORTS, PortSet
from ..scanners.liveness_probe import LIVENESS_METHODS
from ..utils.error_handler import ConfigurationError
from ..utils.logger import Logger, get_logger

DEFAULT_CONFIG_FILE = Path(__file__).parent / "netscan_config.yml"


@dataclass(frozen=True)
class ScanConfig:
    """
    Settings shared read-only by every probe of a scan.

    Attributes:
        timeout_ms: Per-probe timeout in milliseconds
        ports: Ports probed on every live host
        max_concurrency: Ceiling on simultaneously running per-address
            tasks; None means unbounded
        max_subprocesses: Ceiling on concurrently running ping children;
            None derives it from the open file limit
        liveness_method: ICMP transport, "ping" or "scapy"
        resolver_workers: Threads available for reverse-DNS lookups
        max_addresses: Largest range accepted before scanning starts
    """
    timeout_ms: int = 1000
    ports: PortSet = field(default_factory=PortSet.default)
    max_concurrency: Optional[int] = None
    max_subprocesses: Optional[int] = None
    liveness_method: str = "ping"
    resolver_workers: int = 32
    max_addresses: int = 1_048_576

    def __post_init__(self):
        if not isinstance(self.ports, PortSet):
            object.__setattr__(self, "ports", PortSet(self.ports))
        if self.timeout_ms <= 0:
            raise ConfigurationError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_concurrency is not None and self.max_concurrency <= 0:
            raise ConfigurationError(f"max_concurrency must be positive, got {self.max_concurrency}")
        if self.max_subprocesses is not None and self.max_subprocesses <= 0:
            raise ConfigurationError(f"max_subprocesses must be positive, got {self.max_subprocesses}")
        if self.liveness_method not in LIVENESS_METHODS:
            raise ConfigurationError(
                f"liveness_method must be one of {LIVENESS_METHODS}, got {self.liveness_method!r}"
            )
        if self.resolver_workers <= 0:
            raise ConfigurationError(f"resolver_workers must be positive, got {self.resolver_workers}")
        if self.max_addresses <= 0:
            raise ConfigurationError(f"max_addresses must be positive, got {self.max_addresses}")

    @property
    def timeout(self) -> float:
        """Per-probe timeout in seconds."""
        return self.timeout_ms / 1000.0

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeout_ms": self.timeout_ms,
            "ports": list(self.ports),
            "max_concurrency": self.max_concurrency,
            "max_subprocesses": self.max_subprocesses,
            "liveness_method": self.liveness_method,
            "resolver_workers": self.resolver_workers,
            "max_addresses": self.max_addresses,
        }


class ConfigLoader:
    """
    Loads and validates the YAML configuration file.
    Falls back to default values when the file or individual keys are missing or invalid.
    """

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or get_logger(__name__)

    def load(self, config_path: Optional[Union[str, Path]] = None) -> ScanConfig:
        """
        Load the scan configuration.

        Args:
            config_path: Path of the YAML file. Defaults to the packaged
                netscan_config.yml.

        Returns:
            ScanConfig with loaded or default values
        """
        path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE

        if not path.exists():
            self.logger.warning(f"Config file not found at {path}. Using default configuration.")
            return ScanConfig()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing config file {path}: {e}")
            self.logger.warning("Using default scan configuration.")
            return ScanConfig()
        except OSError as e:
            self.logger.error(f"Cannot read config file {path}: {e}")
            self.logger.warning("Using default scan configuration.")
            return ScanConfig()

        if not isinstance(config_data, dict) or not isinstance(config_data.get('scan'), dict):
            self.logger.warning(f"Invalid config structure in {path}. Using default configuration.")
            return ScanConfig()

        self.logger.debug(f"Loaded configuration from {path}")
        return self.from_mapping(config_data['scan'])

    def from_mapping(self, scan_data: Dict[str, Any]) -> ScanConfig:
        """Build a ScanConfig from the contents of the `scan:` section."""
        defaults = ScanConfig()
        return ScanConfig(
            timeout_ms=self._validate_positive_int(scan_data.get('timeout_ms', defaults.timeout_ms), 'timeout_ms', defaults.timeout_ms),
            ports=self._validate_ports(scan_data.get('ports')),
            max_concurrency=self._validate_optional_positive_int(scan_data.get('max_concurrency'), 'max_concurrency'),
            max_subprocesses=self._validate_optional_positive_int(scan_data.get('max_subprocesses'), 'max_subprocesses'),
            liveness_method=self._validate_method(scan_data.get('liveness_method', defaults.liveness_method)),
            resolver_workers=self._validate_positive_int(scan_data.get('resolver_workers', defaults.resolver_workers), 'resolver_workers', defaults.resolver_workers),
            max_addresses=self._validate_positive_int(scan_data.get('max_addresses', defaults.max_addresses), 'max_addresses', defaults.max_addresses),
        )

    def _validate_positive_int(self, value: Any, field_name: str, default: int) -> int:
        """
        Validate that a value is a positive integer.

        Args:
            value: Value to validate
            field_name: Name of the field for error messages
            default: Default value to use if validation fails

        Returns:
            Validated integer value or default
        """
        if isinstance(value, bool):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default
        try:
            int_value = int(value)
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default
        if int_value <= 0:
            self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
            return default
        return int_value

    def _validate_optional_positive_int(self, value: Any, field_name: str) -> Optional[int]:
        if value is None or value == 0:
            return None
        return self._validate_positive_int(value, field_name, None)

    def _validate_method(self, method: Any) -> str:
        if method not in LIVENESS_METHODS:
            self.logger.warning(f"Invalid liveness method: {method}. Must be one of {list(LIVENESS_METHODS)}. Using default: ping")
            return "ping"
        return method

    def _validate_ports(self, ports: Any) -> PortSet:
        if ports is None:
            return PortSet.default()
        try:
            if isinstance(ports, str):
                return PortSet.parse(ports)
            if isinstance(ports, (list, tuple)) and ports:
                return PortSet(ports)
        except ConfigurationError as e:
            self.logger.warning(f"Invalid ports: {e}. Using default port list.")
            return PortSet.default()
        self.logger.warning(f"Invalid ports: {ports}. Must be a non-empty list. Using default port list.")
        return PortSet.default()

    def create_default_config(self, config_path: Union[str, Path]) -> Path:
        """
        Write a configuration file holding the default values.

        An existing file is left untouched.

        Args:
            config_path: Destination path

        Returns:
            Path of the configuration file
        """
        path = Path(config_path)
        if path.exists():
            return path

        default_config = {
            'scan': {
                'timeout_ms': 1000,
                'ports': list(DEFAULT_PORTS),
                'max_concurrency': None,
                'max_subprocesses': None,
                'liveness_method': 'ping',
                'resolver_workers': 32,
                'max_addresses': 1048576,
            }
        }

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(default_config, f, default_flow_style=False, indent=2)
        self.logger.info(f"Created default config at {path}")
        return path
