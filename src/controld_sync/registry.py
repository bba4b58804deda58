"""Registry of exposed switch entities, one per Control D profile."""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .client import Profile
from .common import write_secure_file
from .exceptions import RegistryError

logger = logging.getLogger(__name__)

# Fixed namespace so identities survive restarts
ENTITY_NAMESPACE = uuid.UUID("5b1f1f0c-3c6e-4d0a-9a57-6c6f6e74726f")

CACHE_VERSION = 1


def entity_identity(profile_id: str) -> str:
    """Derive the stable entity identity for a profile PK."""
    return str(uuid.uuid5(ENTITY_NAMESPACE, profile_id))


# =============================================================================
# ENTITIES
# =============================================================================


class SwitchHandler(ABC):
    """On/off control surface bound to an exposed entity."""

    @abstractmethod
    def get(self) -> bool:
        """Return the current state without blocking."""
        pass

    @abstractmethod
    def set(self, desired: bool) -> None:
        """Apply a new state, raising ServiceCommunicationError on failure."""
        pass


@dataclass
class ExposedEntity:
    """A profile exposed as a switch."""

    identity: str
    name: str
    context: Dict[str, Any] = field(default_factory=dict)
    on: bool = False
    info: Dict[str, str] = field(default_factory=dict)
    handler: Optional[SwitchHandler] = field(default=None, repr=False, compare=False)

    @property
    def profile(self) -> Optional[Profile]:
        return self.context.get("profile")

    def read(self) -> bool:
        """Answer a state query from the host."""
        if self.handler is None:
            return self.on
        return self.handler.get()

    def write(self, value: bool) -> None:
        """
        Apply a user toggle through the bound handler.

        Raises:
            RegistryError: If no handler is bound
            ServiceCommunicationError: If the handler could not apply it
        """
        if self.handler is None:
            raise RegistryError(f"No handler bound to {self.name}")
        self.handler.set(value)
        self.on = value

    def to_dict(self) -> Dict[str, Any]:
        profile = self.profile
        return {
            "identity": self.identity,
            "name": self.name,
            "on": self.on,
            "info": self.info,
            "profile": profile.to_dict() if profile is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExposedEntity":
        entity = cls(
            identity=data["identity"],
            name=data["name"],
            on=bool(data.get("on", False)),
            info=dict(data.get("info") or {}),
        )
        if data.get("profile"):
            entity.context["profile"] = Profile.from_dict(data["profile"])
        return entity


# =============================================================================
# REGISTRY INTERFACE
# =============================================================================


class EntityRegistry(ABC):
    """Abstract base class for the host that owns exposed entities."""

    @abstractmethod
    def create(self, name: str, identity: str) -> ExposedEntity:
        """Create an entity; it is not exposed until register() is called."""
        pass

    @abstractmethod
    def update(self, entity: ExposedEntity) -> None:
        """Refresh metadata of a registered entity."""
        pass

    @abstractmethod
    def register(self, entity: ExposedEntity) -> None:
        """Publish an entity."""
        pass

    @abstractmethod
    def unregister(self, entity: ExposedEntity) -> None:
        """Retract an entity and stop tracking it."""
        pass

    @abstractmethod
    def lookup(self, identity: str) -> Optional[ExposedEntity]:
        """Return the registered entity with this identity, if any."""
        pass

    @abstractmethod
    def entities(self) -> List[ExposedEntity]:
        """Return every registered entity."""
        pass

    def flush(self) -> None:
        """Persist pending state. Default implementation: nothing to do."""
        pass


class InMemoryEntityRegistry(EntityRegistry):
    """Registry that keeps entities in a dict for the life of the process."""

    def __init__(self) -> None:
        self._entities: Dict[str, ExposedEntity] = {}

    def create(self, name: str, identity: str) -> ExposedEntity:
        return ExposedEntity(identity=identity, name=name)

    def update(self, entity: ExposedEntity) -> None:
        if entity.identity not in self._entities:
            raise RegistryError(f"Cannot update unregistered entity: {entity.name}")
        self._entities[entity.identity] = entity

    def register(self, entity: ExposedEntity) -> None:
        if entity.identity in self._entities:
            raise RegistryError(f"Entity already registered: {entity.name}")
        self._entities[entity.identity] = entity

    def unregister(self, entity: ExposedEntity) -> None:
        if self._entities.pop(entity.identity, None) is None:
            raise RegistryError(f"Cannot unregister unknown entity: {entity.name}")

    def lookup(self, identity: str) -> Optional[ExposedEntity]:
        return self._entities.get(identity)

    def entities(self) -> List[ExposedEntity]:
        return list(self._entities.values())


class CachedEntityRegistry(InMemoryEntityRegistry):
    """
    In-memory registry persisted to a JSON cache file.

    The cache is rewritten after every register, update and unregister so
    entities come back with their last known state after a restart.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        try:
            cache = json.loads(self.path.read_text("utf-8"))
            items = cache.get("entities", [])
            for item in items:
                entity = ExposedEntity.from_dict(item)
                logger.info(f"Loading entity from cache: {entity.name}")
                self._entities[entity.identity] = entity
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load entity cache {self.path}: {e}")
            self._entities.clear()

    def flush(self) -> None:
        """
        Write the registry to the cache file.

        Raises:
            RegistryError: If the cache cannot be written
        """
        cache = {
            "version": CACHE_VERSION,
            "entities": [entity.to_dict() for entity in self._entities.values()],
        }
        try:
            write_secure_file(self.path, json.dumps(cache, indent=2, sort_keys=True))
        except OSError as e:
            raise RegistryError(f"Failed to write entity cache {self.path}: {e}") from e
        logger.debug(f"Saved {len(self._entities)} entities to {self.path}")

    def update(self, entity: ExposedEntity) -> None:
        super().update(entity)
        self.flush()

    def register(self, entity: ExposedEntity) -> None:
        super().register(entity)
        self.flush()

    def unregister(self, entity: ExposedEntity) -> None:
        super().unregister(entity)
        self.flush()
