"""
Configuration module for netscan.
Provides loading and validation of the scan configuration.
"""

from .config_loader import DEFAULT_CONFIG_FILE, ConfigLoader, ScanConfig

__all__ = ['ConfigLoader', 'ScanConfig', 'DEFAULT_CONFIG_FILE']
