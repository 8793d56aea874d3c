"""Resolver configuration.

Everything an engine needs is carried by one ``ResolverConfig`` passed at
construction, so several independently configured engines can coexist.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from services.common.sidecar_runtime_utils import env_float, env_int, env_list, env_str

# Interchangeable proxies fronting the TIDAL catalog, grouped by operator.
DEFAULT_SERVERS: tuple[str, ...] = (
    "https://hifi.prigoana.com",
    "https://california.monochrome.tf",
    "https://london.monochrome.tf",
    "https://singapore.monochrome.tf",
    "https://ohio.monochrome.tf",
    "https://oregon.monochrome.tf",
    "https://virginia.monochrome.tf",
    "https://frankfurt.monochrome.tf",
    "https://tokyo.monochrome.tf",
    "https://kraken.squid.wtf",
    "https://triton.squid.wtf",
    "https://zeus.squid.wtf",
    "https://aether.squid.wtf",
    "https://phoenix.squid.wtf",
    "https://shiva.squid.wtf",
    "https://chaos.squid.wtf",
    "https://hund.qqdl.site",
    "https://katze.qqdl.site",
    "https://maus.qqdl.site",
    "https://vogel.qqdl.site",
    "https://wolf.qqdl.site",
)

DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_IMAGE_BASE_URL = "https://resources.tidal.com/images"
DEFAULT_USER_AGENT = "hifi-resolver/1.0"
DEFAULT_SEARCH_LIMIT = 50


@dataclass(frozen=True)
class ResolverConfig:
    """Settings for one resolver engine.

    Attributes:
        servers: Proxy base URLs, in fallback order.
        request_timeout: Budget in seconds for a single attempt against one server.
        image_base_url: Image CDN root used for cover and picture URLs.
        user_agent: User-Agent sent to every proxy.
        search_limit: Default page size for searches.
    """

    servers: tuple[str, ...] = field(default=DEFAULT_SERVERS)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    image_base_url: str = DEFAULT_IMAGE_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    search_limit: int = DEFAULT_SEARCH_LIMIT

    def __post_init__(self) -> None:
        # Accept any iterable of servers but store an immutable tuple.
        object.__setattr__(self, "servers", tuple(self.servers))
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.search_limit <= 0:
            raise ValueError(f"search_limit must be positive, got {self.search_limit}")

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        """Build a config from HIFI_* environment variables."""
        return cls(
            servers=env_list("HIFI_SERVERS", DEFAULT_SERVERS),
            request_timeout=env_float("HIFI_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT)),
            image_base_url=env_str("HIFI_IMAGE_BASE_URL", DEFAULT_IMAGE_BASE_URL).rstrip("/"),
            user_agent=env_str("HIFI_USER_AGENT", DEFAULT_USER_AGENT),
            search_limit=env_int("HIFI_SEARCH_LIMIT", str(DEFAULT_SEARCH_LIMIT)),
        )
