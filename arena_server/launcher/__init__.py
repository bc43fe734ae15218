"""
Arena Game Server - Launcher Module
Configuration, logging setup, operator console and the startup orchestrator
"""

from .commands import CommandListener
from .config import ConfigError, ConfigLoader, StartupConfig
from .log_setup import LogInitializer, SeverityLevel
from .orchestrator import Orchestrator, OrchestratorError, OrchestratorPhase, main

__all__ = [
    'CommandListener', 'ConfigError', 'ConfigLoader', 'StartupConfig', 'LogInitializer',
    'SeverityLevel', 'Orchestrator', 'OrchestratorError', 'OrchestratorPhase', 'main'
]
