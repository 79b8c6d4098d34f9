"""pydatamanager - Shared request cache and subscriptions for async Python components."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydatamanager")
except PackageNotFoundError:
    __version__ = "0+local"
from pydatamanager._signature import RequestSignature
from pydatamanager._transport import AiohttpRequester, Middleware, Requester
from pydatamanager.config import (
    DataManagerConfig,
    configure,
    get_default_config,
    set_default_config,
)
from pydatamanager.exceptions import (
    ConfigError,
    DataManagerError,
    InterpolationError,
    TransformError,
    TransportError,
)
from pydatamanager.manager import DataManager
from pydatamanager.models import DatasourceDefinition, Request, RequestOptions
from pydatamanager.registry import DataRegistry, default_registry
from pydatamanager.results import Cached, Pending, ReadResult, Refreshing

__all__ = [
    "__version__",
    "AiohttpRequester",
    "Cached",
    "ConfigError",
    "DataManager",
    "DataManagerConfig",
    "DataManagerError",
    "DataRegistry",
    "DatasourceDefinition",
    "InterpolationError",
    "Middleware",
    "Pending",
    "ReadResult",
    "Refreshing",
    "Request",
    "RequestOptions",
    "RequestSignature",
    "Requester",
    "TransformError",
    "TransportError",
    "configure",
    "default_registry",
    "get_default_config",
    "set_default_config",
]
