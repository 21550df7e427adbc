"""
Policy-enforced filesystem access exposed as MCP tools.
"""

__version__ = "0.1.0"

from .accessor import SecureAccessor
from .config import Config, ServerConfig, load_config
from .errors import (
    FileJackError,
    FileNotFound,
    InvalidParameters,
    InvalidPath,
    IoError,
    PermissionDenied,
    ProtocolError,
    RateLimitExceeded,
    ToolNotFound,
)
from .policy import AccessPolicy
from .rate_limit import RateLimiter
from .security import validate_for_read, validate_for_write, validate_size
from .tools import ToolDispatcher, tool_definitions

__all__ = [
    "AccessPolicy",
    "Config",
    "FileJackError",
    "FileNotFound",
    "InvalidParameters",
    "InvalidPath",
    "IoError",
    "PermissionDenied",
    "ProtocolError",
    "RateLimitExceeded",
    "RateLimiter",
    "SecureAccessor",
    "ServerConfig",
    "ToolDispatcher",
    "ToolNotFound",
    "load_config",
    "tool_definitions",
    "validate_for_read",
    "validate_for_write",
    "validate_size",
]
