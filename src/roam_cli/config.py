"""Endpoint configuration for the Roam Research Backend API."""

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

ROAM_API_HOST = "api.roamresearch.com"
REQUEST_TIMEOUT_SECONDS = 30.0


class EndpointConfig(BaseModel):
    """Immutable connection settings for one Roam graph.

    Built once by the command-line layer and passed explicitly to the
    request client. Nothing below this layer reads the environment.
    """

    model_config = ConfigDict(frozen=True)

    graph_name: str = Field(..., min_length=1)
    api_token: str = Field(..., min_length=1, repr=False)
    host: str = ROAM_API_HOST
    timeout: float = Field(REQUEST_TIMEOUT_SECONDS, gt=0)

    @property
    def base_path(self) -> str:
        """Per-graph path prefix, e.g. ``/api/graph/my-graph``."""
        return f"/api/graph/{self.graph_name}"

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"


def load_config(
    api_token: str | None = None,
    graph_name: str | None = None,
    timeout: float | None = None,
) -> EndpointConfig:
    """Build an EndpointConfig from arguments or the environment.

    Args:
        api_token: Roam API token. If None, reads from ROAM_API_TOKEN env var.
        graph_name: Roam graph name. If None, reads from ROAM_GRAPH_NAME env var.
        timeout: Request budget in seconds. Defaults to REQUEST_TIMEOUT_SECONDS.

    Returns:
        The resolved configuration.

    Raises:
        AuthenticationError: If API token or graph name is not provided.
    """
    # Load environment variables from .env file
    load_dotenv()

    resolved_token = api_token or os.getenv("ROAM_API_TOKEN")
    resolved_graph = graph_name or os.getenv("ROAM_GRAPH_NAME")

    if not resolved_token:
        raise AuthenticationError(
            "Roam API token not provided and ROAM_API_TOKEN env var not set"
        )
    if not resolved_graph:
        raise AuthenticationError(
            "Roam graph name not provided and ROAM_GRAPH_NAME env var not set"
        )

    config = EndpointConfig(
        graph_name=resolved_graph,
        api_token=resolved_token,
        timeout=timeout if timeout is not None else REQUEST_TIMEOUT_SECONDS,
    )
    logger.info("Loaded configuration for graph: %s", config.graph_name)
    return config
