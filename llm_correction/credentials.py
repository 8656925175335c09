"""Provider credential lookup and model-catalog caching.

Credentials are resolved by provider name: a stored provider
configuration first, then an environment variable.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MODEL_CATALOG: List[str] = [
    "llama-3.1-70b-versatile",
    "llama-3.1-8b-instant",
    "mixtral-8x7b-32768",
]


@dataclass
class TTLCache(Generic[T]):
    """Single-value cache with an explicit time-to-live.

    Attributes:
        ttl: Lifetime of a cached value in seconds.
        value: The cached value, or None when empty.
        fetched_at: Monotonic timestamp of the last fill.
    """

    ttl: float
    value: Optional[T] = None
    fetched_at: Optional[float] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def is_fresh(self) -> bool:
        if self.value is None or self.fetched_at is None:
            return False
        return (self.clock() - self.fetched_at) < self.ttl

    def get(self, loader: Callable[[], T], force_refresh: bool = False) -> T:
        """Return the cached value, reloading it when stale or forced.

        Args:
            loader: Zero-argument callable producing a fresh value.
            force_refresh: Ignore any cached value.

        Returns:
            The cached or freshly loaded value.
        """
        if force_refresh or not self.is_fresh():
            self.value = loader()
            self.fetched_at = self.clock()
        return self.value

    def clear(self) -> None:
        self.value = None
        self.fetched_at = None


@dataclass(frozen=True)
class StoredCredential:
    """Provider configuration as persisted by operators."""

    provider: str
    api_key: Optional[str]
    base_url: Optional[str] = None
    models: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProviderCredential:
    """Resolved credential for one provider.

    Attributes:
        source: "store" or "env", for diagnostics.
    """

    provider: str
    api_key: str
    base_url: Optional[str]
    models: List[str]
    source: str


StoredCredentialLookup = Callable[[str], Optional[StoredCredential]]


class CredentialResolver:
    """Resolves provider credentials and caches the provider model catalog."""

    def __init__(
        self,
        provider: str,
        env_var: str,
        default_base_url: Optional[str] = None,
        lookup: Optional[StoredCredentialLookup] = None,
        catalog_ttl_seconds: float = 300.0,
        environ: Optional[Any] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise the resolver.

        Args:
            provider: Provider name, e.g. "groq".
            env_var: Environment variable holding the fallback API key.
            default_base_url: Endpoint used when the stored config has none.
            lookup: Callable returning the stored configuration for a provider.
            catalog_ttl_seconds: Lifetime of the cached model catalog.
            environ: Mapping used instead of ``os.environ`` (tests).
            clock: Monotonic clock used by the catalog cache.
        """
        self._provider = provider
        self._env_var = env_var
        self._default_base_url = default_base_url
        self._lookup = lookup
        self._environ = environ if environ is not None else os.environ
        self._catalog: TTLCache[List[str]] = TTLCache(ttl=catalog_ttl_seconds, clock=clock)

    @property
    def provider(self) -> str:
        return self._provider

    def resolve(self) -> Optional[ProviderCredential]:
        """Return the active credential, or None when nothing is configured."""
        stored = self._load_stored()
        if stored is not None and stored.api_key:
            return ProviderCredential(
                provider=self._provider,
                api_key=stored.api_key,
                base_url=stored.base_url or self._default_base_url,
                models=list(stored.models),
                source="store",
            )

        env_key = (self._environ.get(self._env_var) or "").strip()
        if env_key:
            return ProviderCredential(
                provider=self._provider,
                api_key=env_key,
                base_url=self._default_base_url,
                models=list(DEFAULT_MODEL_CATALOG),
                source="env",
            )

        logger.info("No credential configured for provider '%s'", self._provider)
        return None

    def list_models(self, force_refresh: bool = False) -> List[str]:
        """Return the provider model catalog, cached for the configured TTL.

        Args:
            force_refresh: Bypass the cache and reload the catalog.

        Returns:
            Model identifiers, falling back to the built-in catalog.
        """
        return self._catalog.get(self._load_models, force_refresh=force_refresh)

    def select_model(self, preferred: str, force_refresh: bool = False) -> str:
        """Pick ``preferred`` when the catalog offers it, else the first catalog entry."""
        catalog = self.list_models(force_refresh=force_refresh)
        if not catalog or preferred in catalog:
            return preferred
        return catalog[0]

    def _load_models(self) -> List[str]:
        stored = self._load_stored()
        if stored is not None and stored.models:
            return list(stored.models)
        return list(DEFAULT_MODEL_CATALOG)

    def _load_stored(self) -> Optional[StoredCredential]:
        if self._lookup is None:
            return None
        try:
            return self._lookup(self._provider)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Stored credential lookup failed for provider '%s'; using environment fallback: %s",
                self._provider,
                exc,
            )
            return None
