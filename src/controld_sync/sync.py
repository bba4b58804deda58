"""Reconciliation of exposed entities against the Control D profile list."""

import logging
from typing import Dict, List

from .client import ControlDClient, Profile
from .controller import ProfileSwitch
from .exceptions import RegistryError
from .registry import EntityRegistry, ExposedEntity, entity_identity

logger = logging.getLogger(__name__)


def reconcile(
    profiles: List[Profile],
    registry: EntityRegistry,
    client: ControlDClient,
) -> List[str]:
    """
    Make the registry expose exactly one entity per profile.

    Existing entities get the fresh profile snapshot and a metadata update,
    new profiles are created and registered, and entities whose profile is
    no longer listed are unregistered. An empty profile list therefore
    removes every exposed entity.

    Args:
        profiles: Profiles fetched from the API
        registry: Registry holding the exposed entities
        client: Client the switch controllers toggle through

    Returns:
        Profile PKs seen in this pass
    """
    discovered: List[str] = []

    if not profiles:
        logger.warning(
            "No profiles found in your Control D account. "
            "All exposed profiles will be removed."
        )

    for profile in profiles:
        identity = entity_identity(profile.pk)
        discovered.append(profile.pk)

        existing = registry.lookup(identity)
        try:
            if existing is not None:
                logger.info(f"Restoring existing profile from cache: {existing.name}")
                existing.context["profile"] = profile
                registry.update(existing)
                ProfileSwitch(client, existing)
            else:
                logger.info(f"Adding new profile: {profile.name}")
                entity = registry.create(profile.name, identity)
                entity.context["profile"] = profile
                ProfileSwitch(client, entity)
                registry.register(entity)
        except RegistryError as e:
            logger.error(f"Failed to expose profile {profile.name}: {e}")

    known = set(discovered)
    for entity in registry.entities():
        profile = entity.profile
        if profile is not None and profile.pk in known:
            continue

        logger.info(f"Removing profile no longer in account: {entity.name}")
        try:
            registry.unregister(entity)
        except RegistryError as e:
            logger.error(f"Failed to remove profile {entity.name}: {e}")

    return discovered


def refresh_statuses(
    profiles: List[Profile],
    tracked_ids: List[str],
    registry: EntityRegistry,
    client: ControlDClient,
) -> int:
    """
    Push fresh filtering state into already exposed entities.

    Never adds or removes entities; profiles without an exposed entity and
    entities without a fetched profile are left alone.

    Returns:
        Number of entities refreshed
    """
    by_pk: Dict[str, Profile] = {profile.pk: profile for profile in profiles}
    refreshed = 0

    for profile_id in tracked_ids:
        entity = registry.lookup(entity_identity(profile_id))
        profile = by_pk.get(profile_id)
        if entity is None or profile is None:
            continue

        entity.context["profile"] = profile
        _switch_for(entity, client).push_status()
        refreshed += 1

    return refreshed


def _switch_for(entity: ExposedEntity, client: ControlDClient) -> ProfileSwitch:
    if isinstance(entity.handler, ProfileSwitch):
        return entity.handler
    return ProfileSwitch(client, entity)
