# revops/__init__.py
"""
Shared Package for Revenue Operations Reporting

This package contains:
- config: Configuration management (.env + environment variables)
- quarterly_rollup: Quarterly performance rollup & channel scoring engine

Usage:
    from revops.config import config, configure_logging
    from revops.quarterly_rollup import RollupProcessor

    # Or import commonly used items directly
    from revops import config, configure_logging
"""

# Configuration
from .config import (
    config,
    Config,
    RollupSettings,
    configure_logging,
    LOG_FORMAT,
)

__all__ = [
    # Config
    'config',
    'Config',
    'RollupSettings',
    'configure_logging',
    'LOG_FORMAT',
]

__version__ = '2.1.0'
