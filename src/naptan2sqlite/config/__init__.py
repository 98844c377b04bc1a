"""
Configuration module for the NaPTAN stops pipeline.
"""

from .settings import (
    Config,
    ConfigurationError,
    LoadConfig,
    OutputConfig,
    SourceConfig,
    TempConfig,
    parse_prefix,
)

__all__ = [
    'Config',
    'ConfigurationError',
    'SourceConfig',
    'OutputConfig',
    'LoadConfig',
    'TempConfig',
    'parse_prefix'
]
