"""Factory for creating snapshot resolvers."""

from typing import Optional

from crawlscope.core.interfaces import DomainQueryBackend, SnapshotResolver
from crawlscope.core.models import ClientConfig


class SnapshotResolverFactory:
    """Pick a snapshot resolver by name or by backend capability."""

    # Registry of known strategies (lazy-loaded to avoid circular imports)
    _RESOLVERS: dict[str, type[SnapshotResolver]] | None = None

    @classmethod
    def _load_resolvers(cls) -> dict[str, type[SnapshotResolver]]:
        if cls._RESOLVERS is None:
            from crawlscope.resolvers.run_scoped import RunScopedResolver
            from crawlscope.resolvers.time_cutoff import TimeCutoffResolver

            cls._RESOLVERS = {
                "run-scoped": RunScopedResolver,
                "time-cutoff": TimeCutoffResolver,
            }
        return cls._RESOLVERS

    @classmethod
    def get_resolver(
        cls,
        backend: DomainQueryBackend,
        mode: Optional[str] = None,
        config: Optional[ClientConfig] = None,
    ) -> SnapshotResolver:
        """Get a snapshot resolver.

        Args:
            backend: Query backend the resolver reads from.
            mode: Strategy name ("run-scoped", "time-cutoff"). When omitted,
                run-scoped is used if the backend supports it.
            config: Limits passed to the resolver.

        Returns:
            Resolver instance.

        Raises:
            ValueError: If ``mode`` is not a known strategy.
        """
        resolvers = cls._load_resolvers()
        config = config or ClientConfig()

        if mode is None:
            mode = "run-scoped" if backend.supports_run_scope else "time-cutoff"

        resolver_class = resolvers.get(mode.lower())
        if resolver_class is None:
            raise ValueError(
                f"Unknown resolver mode: {mode} (expected one of {', '.join(resolvers)})"
            )

        if mode.lower() == "time-cutoff":
            return resolver_class(  # type: ignore[call-arg]
                backend,
                urls_limit=config.urls_limit,
                crawls_limit=config.crawls_limit,
            )
        return resolver_class(backend, urls_limit=config.urls_limit)  # type: ignore[call-arg]

    @classmethod
    def list_modes(cls) -> list[str]:
        """List all known resolver modes."""
        return list(cls._load_resolvers().keys())

    @classmethod
    def register_resolver(cls, name: str, resolver_class: type[SnapshotResolver]) -> None:
        """Register a new resolution strategy.

        Args:
            name: Strategy name.
            resolver_class: Resolver class, constructed as
                ``resolver_class(backend, urls_limit=...)``.
        """
        resolvers = cls._load_resolvers()
        resolvers[name.lower()] = resolver_class
