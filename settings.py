"""
Runtime settings for the changelog engine and the remote services it talks to.
Defaults can be driven by environment variables so they are easy to set in CI/containers:
- CHANGELOG_MAX_IN_FLIGHT: int, maximum concurrent association fetches
- CHANGELOG_BATCH_SIZE: int, overrides the gateway-recommended batch size
- CHANGELOG_TIMEOUT: float (seconds), per-request timeout handed to the transport
Retry/backoff knobs live in transport.retry.
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_MAX_IN_FLIGHT = int(os.getenv("CHANGELOG_MAX_IN_FLIGHT", "8"))
_env_batch = os.getenv("CHANGELOG_BATCH_SIZE")
DEFAULT_BATCH_SIZE = int(_env_batch) if _env_batch is not None and _env_batch != "" else None
DEFAULT_TIMEOUT = float(os.getenv("CHANGELOG_TIMEOUT", "10"))

# batch size used when neither the settings nor the gateway recommend one
FALLBACK_BATCH_SIZE = 25


@dataclass(frozen=True)
class AggregationSettings:
    """Concurrency knobs for the aggregation engine."""

    max_in_flight: int = DEFAULT_MAX_IN_FLIGHT
    batch_size: Optional[int] = DEFAULT_BATCH_SIZE

    def __post_init__(self):
        if self.max_in_flight < 1:
            raise ValueError(f"max_in_flight must be at least 1, got {self.max_in_flight}")
        if self.batch_size is not None and self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

    def effective_batch_size(self, gateway) -> int:
        """Explicit setting first, then the gateway's recommendation, then the fallback."""
        if self.batch_size is not None:
            return self.batch_size
        recommended = getattr(gateway, "batch_size", None)
        if isinstance(recommended, int) and recommended > 0:
            return recommended
        return FALLBACK_BATCH_SIZE


@dataclass(frozen=True)
class ServiceSettings:
    """Location and credentials of one remote service."""

    base_url: str
    token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT


def load_service_settings(name: str, base_url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None) -> Optional[ServiceSettings]:
    """Resolve settings for a service from explicit values or <NAME>_URL / <NAME>_TOKEN env variables.

    Returns None when no base URL is known for the service.
    """
    prefix = name.upper()
    url_val = base_url if base_url else os.getenv(f"{prefix}_URL")
    token_val = token if token else os.getenv(f"{prefix}_TOKEN")
    if not url_val:
        return None
    return ServiceSettings(base_url=url_val, token=token_val or None, timeout=DEFAULT_TIMEOUT if timeout is None else float(timeout))


__all__ = ["AggregationSettings", "ServiceSettings", "load_service_settings", "DEFAULT_MAX_IN_FLIGHT", "DEFAULT_BATCH_SIZE", "DEFAULT_TIMEOUT"]
