"""Serializer registry for voxrelay.

Maps a framing style to the serializer class that speaks it. Custom
serializers can be registered at runtime.
"""

from __future__ import annotations

from typing import Type

from loguru import logger

from voxrelay.core.events import Codec, FramingStyle, SessionConfig
from voxrelay.serializers.base import BaseSerializer


class SerializerRegistry:
    """Registry mapping framing styles to serializer classes.

    Usage:
        registry = SerializerRegistry()
        serializer = registry.for_config(session_config)
    """

    def __init__(self) -> None:
        self._registry: dict[str, Type[BaseSerializer]] = {}
        self._loaded = False

    def _load_builtins(self) -> None:
        """Lazily load the built-in serializers."""
        if self._loaded:
            return

        from voxrelay.serializers.binary import BinarySerializer
        from voxrelay.serializers.json_media import JsonMediaSerializer

        self._registry.setdefault(FramingStyle.JSON.value, JsonMediaSerializer)
        self._registry.setdefault(FramingStyle.BINARY.value, BinarySerializer)
        self._loaded = True

    def register(self, name: str, cls: Type[BaseSerializer]) -> None:
        """Register a custom serializer class under a framing name."""
        if not issubclass(cls, BaseSerializer):
            raise TypeError(f"{cls} is not a subclass of BaseSerializer")
        self._registry[name] = cls
        logger.debug(f"Registered custom serializer: {name}")

    def get(self, name: str | FramingStyle) -> Type[BaseSerializer]:
        """Get a serializer class by framing name.

        Raises:
            KeyError: If no serializer is registered for the given name.
        """
        self._load_builtins()
        key = name.value if isinstance(name, FramingStyle) else name
        if key not in self._registry:
            available = ", ".join(sorted(self._registry.keys()))
            raise KeyError(f"No serializer registered for '{key}'. Available: {available}")
        return self._registry[key]

    def create(
        self,
        name: str | FramingStyle,
        codec: Codec = Codec.PCM16,
        sample_rate: int = 8000,
    ) -> BaseSerializer:
        """Create a serializer instance by framing name."""
        return self.get(name)(codec=codec, sample_rate=sample_rate)

    def for_config(self, config: SessionConfig) -> BaseSerializer:
        """Create the serializer matching a session's negotiated format."""
        return self.create(config.framing_style, config.caller_codec, config.caller_sample_rate)

    @property
    def available(self) -> list[str]:
        """List all available framing names."""
        self._load_builtins()
        return sorted(self._registry.keys())


# Global singleton
serializer_registry = SerializerRegistry()
