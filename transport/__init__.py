"""
Transport package: HTTP clients and retry/backoff shared by the service gateways.
"""

from .rest import GraphQLClient, RestClient
from .retry import configure_retry

__all__ = ["RestClient", "GraphQLClient", "configure_retry"]
