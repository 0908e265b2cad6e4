"""Handler Chain - pooled request contexts, pluggable behaviors and lazy headers."""

from handler_chain.application import App
from handler_chain.behaviors import BUILTIN_FUNCTIONS, FLASH_KEY
from handler_chain.config import EnvConfig, Mode, load_config
from handler_chain.context import ABORT_INDEX, RequestContext
from handler_chain.env import Env
from handler_chain.exceptions import (
    CapabilityUnsupported,
    ChainException,
    FatalKeyAbsence,
    FunctionNotFound,
    InvalidArgument,
    KeyNotFound,
    NotFoundError,
    PoolError,
    RouteNotFound,
    SignatureError,
    TemplateRenderError,
)
from handler_chain.files import FileInfo, FileResource, LocalFile, MemoryFile
from handler_chain.pool import ContextPool
from handler_chain.registry import (
    CallResult,
    FunctionRegistry,
    FunctionShape,
    NamedFunction,
    merge_registries,
    validate_function,
)
from handler_chain.routing import Route
from handler_chain.session import (
    MemorySessionManager,
    MemorySessionStore,
    SessionManager,
    SessionStore,
)
from handler_chain.template import (
    Jinja2Templator,
    TemplateData,
    Templator,
    template_data,
)
from handler_chain.writer import (
    NOT_WRITTEN,
    ASGIResponseStream,
    CloseNotifier,
    Flusher,
    Hijacker,
    ResponseStream,
    ResponseWriter,
)

__all__ = [
    "ABORT_INDEX",
    "ASGIResponseStream",
    "App",
    "BUILTIN_FUNCTIONS",
    "CallResult",
    "CapabilityUnsupported",
    "ChainException",
    "CloseNotifier",
    "ContextPool",
    "Env",
    "EnvConfig",
    "FLASH_KEY",
    "FatalKeyAbsence",
    "FileInfo",
    "FileResource",
    "Flusher",
    "FunctionNotFound",
    "FunctionRegistry",
    "FunctionShape",
    "Hijacker",
    "InvalidArgument",
    "Jinja2Templator",
    "KeyNotFound",
    "LocalFile",
    "MemoryFile",
    "MemorySessionManager",
    "MemorySessionStore",
    "Mode",
    "NOT_WRITTEN",
    "NamedFunction",
    "NotFoundError",
    "PoolError",
    "RequestContext",
    "ResponseStream",
    "ResponseWriter",
    "Route",
    "RouteNotFound",
    "SessionManager",
    "SessionStore",
    "SignatureError",
    "TemplateData",
    "TemplateRenderError",
    "Templator",
    "load_config",
    "merge_registries",
    "template_data",
    "validate_function",
]
