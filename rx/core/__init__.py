"""Core types: results, configuration, exit codes."""

from .config import ComponentConfig, Config, ConfigError, ExtraFileConfig, load_config
from .errors import ErrorCode
from .result import Err, Ok, Result

__all__ = [
    # config
    "ComponentConfig",
    "Config",
    "ConfigError",
    "ExtraFileConfig",
    "load_config",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
]
