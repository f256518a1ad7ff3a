"""
Protocol handler registry with decorator support.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from pcapdiag.protocols.base import Layer

if TYPE_CHECKING:
    from pcapdiag.protocols.base import BaseProtocolHandler


class ProtocolHandlerRegistry:
    """
    Registry for protocol handlers.

    Handlers are looked up by short name while walking the layers of a
    frame, and by encapsulated transport when choosing application peeks.
    """

    def __init__(self):
        self._handlers: dict[str, type[BaseProtocolHandler]] = {}
        self._by_name: dict[str, str] = {}
        self._by_layer: dict[int, list[str]] = {}
        self._by_encapsulation: dict[str, list[str]] = {}

    def register(self, handler_cls: type[BaseProtocolHandler]) -> type[BaseProtocolHandler]:
        """Register a protocol handler class."""
        if not handler_cls.name:
            raise ValueError(f"Handler {handler_cls.__name__} must have a name")

        handler_id = handler_cls.handler_id()

        if handler_id in self._handlers or handler_cls.name in self._by_name:
            raise ValueError(f"Handler {handler_id} already registered")

        self._handlers[handler_id] = handler_cls
        self._by_name[handler_cls.name] = handler_id
        self._by_layer.setdefault(handler_cls.layer.value, []).append(handler_id)

        if handler_cls.encapsulates:
            self._by_encapsulation.setdefault(handler_cls.encapsulates, []).append(handler_id)

        return handler_cls

    def get(self, name: str) -> type[BaseProtocolHandler] | None:
        """Get handler by id or short name."""
        handler_cls = self._handlers.get(name)
        if handler_cls:
            return handler_cls
        handler_id = self._by_name.get(name)
        return self._handlers.get(handler_id) if handler_id else None

    def get_by_layer(self, layer: Layer) -> list[type[BaseProtocolHandler]]:
        """Get all handlers for a specific layer."""
        handler_ids = self._by_layer.get(layer.value, [])
        return [self._handlers[hid] for hid in handler_ids if hid in self._handlers]

    def get_by_encapsulation(self, protocol: str) -> list[type[BaseProtocolHandler]]:
        """Get handlers peeking into a transport, highest priority first."""
        handler_ids = self._by_encapsulation.get(protocol, [])
        handlers = [self._handlers[hid] for hid in handler_ids if hid in self._handlers]
        return sorted(handlers, key=lambda h: h.priority, reverse=True)

    def list_handlers(self) -> list[str]:
        """List all registered handler IDs."""
        return list(self._handlers.keys())

    def create_instance(self, name: str) -> BaseProtocolHandler | None:
        """Create an instance of a registered handler."""
        handler_cls = self.get(name)
        if handler_cls:
            return handler_cls()
        return None

    def unregister(self, name: str) -> bool:
        """Unregister a handler by id or short name."""
        handler_cls = self.get(name)
        if not handler_cls:
            return False

        handler_id = handler_cls.handler_id()

        layer_ids = self._by_layer.get(handler_cls.layer.value, [])
        self._by_layer[handler_cls.layer.value] = [hid for hid in layer_ids if hid != handler_id]

        if handler_cls.encapsulates in self._by_encapsulation:
            self._by_encapsulation[handler_cls.encapsulates] = [
                hid for hid in self._by_encapsulation[handler_cls.encapsulates] if hid != handler_id
            ]

        del self._by_name[handler_cls.name]
        del self._handlers[handler_id]
        return True

    def clear(self) -> None:
        """Clear all registered handlers."""
        self._handlers.clear()
        self._by_name.clear()
        self._by_layer.clear()
        self._by_encapsulation.clear()


# Global registry instance
_global_registry = ProtocolHandlerRegistry()


def get_global_registry() -> ProtocolHandlerRegistry:
    """Get the global protocol handler registry."""
    return _global_registry


def register_protocol(
    name: str,
    layer: Layer,
    encapsulates: str | None = None,
    default_ports: list[int] | None = None,
    priority: int = 0,
    force_parse: bool = False,
    registry: ProtocolHandlerRegistry | None = None
) -> Callable[[type[BaseProtocolHandler]], type[BaseProtocolHandler]]:
    """
    Decorator to register a protocol handler.

    Args:
        name: Protocol handler name
        layer: Protocol layer this handler operates on
        encapsulates: Transport this handler peeks into (e.g., 'tcp' for TLS)
        default_ports: Default port(s) for this protocol
        priority: Handler priority (higher = preferred)
        force_parse: Whether to parse even if ports don't match
        registry: Registry to use (defaults to global)

    Example:
        @register_protocol('tls', Layer.APPLICATION, encapsulates='tcp',
                           default_ports=[443], priority=100)
        class TLSHandler(BaseProtocolHandler):
            ...
    """
    if registry is None:
        registry = _global_registry

    def decorator(cls: type[BaseProtocolHandler]) -> type[BaseProtocolHandler]:
        cls.name = name
        cls.layer = layer
        cls.encapsulates = encapsulates
        cls.default_ports = default_ports or []
        cls.priority = priority
        cls.force_parse = force_parse

        return registry.register(cls)

    return decorator


def unregister_protocol(name: str, registry: ProtocolHandlerRegistry | None = None) -> bool:
    """Unregister a protocol handler by name."""
    if registry is None:
        registry = _global_registry
    return registry.unregister(name)
