"""Command-line client for the Roam Research Backend API."""

from .cli import main
from .client import RoamClient, send
from .config import EndpointConfig, load_config
from .errors import (
    AuthenticationError,
    HTTPStatusError,
    PageNotFoundError,
    RedirectError,
    RequestTimeoutError,
    ResponseParseError,
    RoamAPIError,
    TransportError,
)
from .tree import Block, TreeNode, build_tree

__all__ = [
    'main',
    'send',
    'build_tree',
    'load_config',
    'Block',
    'TreeNode',
    'EndpointConfig',
    'RoamClient',
    'RoamAPIError',
    'AuthenticationError',
    'PageNotFoundError',
    'RedirectError',
    'TransportError',
    'RequestTimeoutError',
    'HTTPStatusError',
    'ResponseParseError',
]
