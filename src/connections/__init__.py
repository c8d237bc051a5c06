"""Remote service clients."""

from .integration_client import IntegrationClient, extract_server_message

__all__ = ["IntegrationClient", "extract_server_message"]
