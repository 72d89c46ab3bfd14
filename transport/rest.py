"""
REST and GraphQL clients shared by the service gateways.

The clients are thin: they join paths onto a base URL, attach JSON and bearer-token headers,
and delegate retries to transport.retry. Blocking requests run in a worker thread so the
async methods can be awaited concurrently and abandoned on cancellation.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests

from errors import GatewayError
from settings import DEFAULT_TIMEOUT
from transport.retry import perform_request_with_retries

logger = logging.getLogger(__name__)

APPLICATION_JSON = "application/json"
GRAPHQL_ENDPOINT = "graphql"


class RestClient:
    """Client for one REST service rooted at base_url."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: Optional[float] = None, session: Optional[requests.Session] = None, service: str = "rest"):
        if not base_url:
            raise ValueError("base_url is required")
        # keep relative paths under the base path when joining
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.token = token
        self.timeout = DEFAULT_TIMEOUT if timeout is None else timeout
        self.session = session or requests.Session()
        self.service = service
        self.headers = {
            "Accept": APPLICATION_JSON,
            "Content-Type": APPLICATION_JSON,
        }
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    def build_url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json_body: Any = None) -> Any:
        """Blocking request returning the parsed JSON body."""
        url = self.build_url(path)
        result = perform_request_with_retries(
            self.session, method, url, self.service, headers=self.headers, params=params, json_body=json_body, timeout=self.timeout
        )
        return result["body"]

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await asyncio.to_thread(self.request, "GET", path, params)

    async def post_json(self, path: str, body: Any) -> Any:
        return await asyncio.to_thread(self.request, "POST", path, None, body)

    async def get_paged(self, path: str, params: Optional[Dict[str, Any]] = None, start_param: str = "start") -> List[Any]:
        """Follow Bitbucket-style pages (values/isLastPage/nextPageStart) and return every value."""
        values: List[Any] = []
        start = 0
        while True:
            query = dict(params or {})
            query[start_param] = start
            page = await self.get(path, query)
            if not isinstance(page, dict):
                raise GatewayError(self.service, "expected a paged JSON object", url=self.build_url(path))
            values.extend(page.get("values") or [])
            next_start = page.get("nextPageStart")
            if page.get("isLastPage", True) or next_start is None:
                break
            start = next_start
        return values


class GraphQLClient:
    """GraphQL-over-HTTP client posting to <base_url>/graphql."""

    def __init__(self, client: RestClient):
        self.client = client

    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = {"query": document, "variables": variables or {}}
        response = await self.client.post_json(GRAPHQL_ENDPOINT, body)
        url = self.client.build_url(GRAPHQL_ENDPOINT)
        if not isinstance(response, dict):
            raise GatewayError(self.client.service, "GraphQL response was not a JSON object", url=url)
        errors = response.get("errors")
        if errors:
            messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
            raise GatewayError(self.client.service, f"GraphQL errors: {messages}", url=url)
        data = response.get("data")
        if data is None:
            raise GatewayError(self.client.service, "GraphQL response had no data and no errors", url=url)
        return data


__all__ = ["RestClient", "GraphQLClient"]
