"""
Key extraction for Reprise.

A key extractor maps a live call's observable attributes to the
{protocol, identifier} pair the capture side wrote. This equality is the
whole basis of matching, so extractors are pure: no I/O, no state, and they
build identifiers with the same functions capture adapters use
(see reprise.identifier).

Extractors are tried in registration order; the first that recognizes the
call wins. Calls no extractor recognizes have no key.

Example:
    class AmqpKeyExtractor(KeyExtractor):
        @property
        def protocol(self) -> str:
            return "amqp"

        def extract(self, call: LiveCall) -> MatchKey | None:
            ...

    default_registry.register(AmqpKeyExtractor())
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator

from reprise.identifier import grpc_identifier, http_identifier
from reprise.schema import (
    ATTR_IDENTIFIER,
    ATTR_PROTOCOL,
    ATTR_REDIS_CMD,
    LiveCall,
    MatchKey,
    Protocol,
)


class KeyExtractor(ABC):
    """
    Abstract base class for per-protocol key extraction.

    Subclasses must implement:
    - protocol property: The protocol this extractor handles
    - extract(): Return a MatchKey, or None if the call is not this protocol
    """

    @property
    @abstractmethod
    def protocol(self) -> str:
        """Protocol discriminator written to records (e.g. "http")."""
        ...

    @abstractmethod
    def extract(self, call: LiveCall) -> MatchKey | None:
        """Return the call's key, or None if this extractor does not apply."""
        ...

    def _tagged_identifier(self, call: LiveCall) -> str | None:
        """Identifier from `reprise.*` tags when the call is tagged with this protocol."""
        if call.attributes.get(ATTR_PROTOCOL) != self.protocol:
            return None
        identifier = call.attributes.get(ATTR_IDENTIFIER)
        return identifier if isinstance(identifier, str) else None

    def __repr__(self) -> str:
        """String representation of the extractor."""
        return f"<KeyExtractor: {self.protocol}>"


class PostgresKeyExtractor(KeyExtractor):
    """Postgres queries; the identifier is the SQL text."""

    @property
    def protocol(self) -> str:
        return Protocol.POSTGRES.value

    def extract(self, call: LiveCall) -> MatchKey | None:
        identifier = self._tagged_identifier(call)
        if identifier is None:
            return None
        return MatchKey(self.protocol, identifier)


class RedisKeyExtractor(KeyExtractor):
    """Redis commands; requires the command tag alongside the identifier."""

    @property
    def protocol(self) -> str:
        return Protocol.REDIS.value

    def extract(self, call: LiveCall) -> MatchKey | None:
        identifier = self._tagged_identifier(call)
        if identifier is None or not call.attributes.get(ATTR_REDIS_CMD):
            return None
        return MatchKey(self.protocol, identifier)


class HttpKeyExtractor(KeyExtractor):
    """
    HTTP client calls.

    Uses `reprise.*` tags when present, otherwise falls back to OpenTelemetry
    HTTP client attributes so untagged spans still match.
    """

    _METHOD_KEYS = ("http.request.method", "http.method", "http.request.method_original")
    _URL_KEYS = ("url.full", "http.url", "http.target")

    @property
    def protocol(self) -> str:
        return Protocol.HTTP.value

    def extract(self, call: LiveCall) -> MatchKey | None:
        identifier = self._tagged_identifier(call)
        if identifier is not None:
            return MatchKey(self.protocol, identifier)

        method = _first_str(call.attributes, self._METHOD_KEYS)
        url = _first_str(call.attributes, self._URL_KEYS)
        if method is None or url is None:
            return None
        return MatchKey(self.protocol, http_identifier(method, url))


class GrpcKeyExtractor(KeyExtractor):
    """gRPC calls, from tags or OpenTelemetry `rpc.*` attributes."""

    @property
    def protocol(self) -> str:
        return Protocol.GRPC.value

    def extract(self, call: LiveCall) -> MatchKey | None:
        identifier = self._tagged_identifier(call)
        if identifier is not None:
            return MatchKey(self.protocol, identifier)

        attrs = call.attributes
        if attrs.get("rpc.system") != "grpc":
            return None
        service = attrs.get("rpc.service")
        method = attrs.get("rpc.method")
        if not isinstance(service, str) or not isinstance(method, str):
            return None
        return MatchKey(self.protocol, grpc_identifier(service, method))


def _first_str(attributes: dict, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = attributes.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class ExtractorRegistry:
    """
    Ordered collection of key extractors.

    Extractors are tried in registration order. Registering an extractor for
    a protocol that already has one replaces it in place.
    """

    def __init__(self, extractors: list[KeyExtractor] | None = None) -> None:
        """Initialize the registry, optionally with extractors."""
        self._extractors: list[KeyExtractor] = []
        for extractor in extractors or []:
            self.register(extractor)

    def register(self, extractor: KeyExtractor) -> None:
        """
        Register an extractor.

        Raises:
            ValueError: If extractor is None or has an empty protocol
        """
        if extractor is None:
            msg = "Cannot register None as a key extractor"
            raise ValueError(msg)
        if not extractor.protocol:
            msg = "Key extractor must have a non-empty protocol"
            raise ValueError(msg)

        for index, existing in enumerate(self._extractors):
            if existing.protocol == extractor.protocol:
                self._extractors[index] = extractor
                return
        self._extractors.append(extractor)

    def unregister(self, protocol: str) -> bool:
        """Remove the extractor for `protocol`; True if one was removed."""
        before = len(self._extractors)
        self._extractors = [e for e in self._extractors if e.protocol != protocol]
        return len(self._extractors) != before

    def extract(self, call: LiveCall) -> MatchKey | None:
        """Return the first key any extractor produces, or None."""
        for extractor in self._extractors:
            key = extractor.extract(call)
            if key is not None:
                return key
        return None

    def protocols(self) -> list[str]:
        """Registered protocols in evaluation order."""
        return [e.protocol for e in self._extractors]

    def __len__(self) -> int:
        """Return the number of registered extractors."""
        return len(self._extractors)

    def __iter__(self) -> Iterator[KeyExtractor]:
        """Iterate over extractors in evaluation order."""
        return iter(self._extractors)

    def __contains__(self, protocol: str) -> bool:
        """Check if a protocol has an extractor using 'in' operator."""
        return any(e.protocol == protocol for e in self._extractors)

    def __repr__(self) -> str:
        """String representation of the registry."""
        return f"<ExtractorRegistry: [{', '.join(self.protocols())}]>"


def create_default_registry() -> ExtractorRegistry:
    """Registry with the built-in extractors (postgres, redis, http, grpc)."""
    return ExtractorRegistry([
        PostgresKeyExtractor(),
        RedisKeyExtractor(),
        HttpKeyExtractor(),
        GrpcKeyExtractor(),
    ])


# Registry used by extract_key and the default matchers unless overridden
default_registry = create_default_registry()


def extract_key(call: LiveCall, registry: ExtractorRegistry | None = None) -> MatchKey | None:
    """Extract the matching key of `call` (default registry unless given)."""
    return (registry if registry is not None else default_registry).extract(call)
