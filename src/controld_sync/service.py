"""Lifecycle of the profile sync: token gate, discovery and refresh."""

import logging
from enum import Enum
from typing import List, Optional

from .client import ControlDClient
from .config import DEFAULT_REFRESH_INTERVAL
from .controller import ProfileSwitch
from .exceptions import RegistryError
from .registry import EntityRegistry, entity_identity
from .scheduler import RefreshScheduler
from .sync import reconcile, refresh_statuses

logger = logging.getLogger(__name__)


class ValidityState(Enum):
    """Outcome of the one-time API token validation."""

    UNINITIALIZED = "uninitialized"
    INVALID = "invalid"
    VALID = "valid"


class ProfileSyncService:
    """
    Keeps the entity registry in line with the Control D profiles.

    The token is validated once on start(). Only a valid token enables the
    initial full reconciliation and the periodic status refresh; an invalid
    token stays invalid until the process restarts.
    """

    def __init__(
        self,
        client: ControlDClient,
        registry: EntityRegistry,
        refresh_interval: int = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        self.client = client
        self.registry = registry
        self.refresh_interval = refresh_interval
        self.state = ValidityState.UNINITIALIZED
        self.tracked_ids: List[str] = []
        self._scheduler: Optional[RefreshScheduler] = None

    @property
    def scheduler(self) -> Optional[RefreshScheduler]:
        return self._scheduler

    def validate(self) -> bool:
        """Run the token validation if it has not run yet."""
        if self.state is not ValidityState.UNINITIALIZED:
            return self.state is ValidityState.VALID

        if self.client.validate_token():
            self.state = ValidityState.VALID
            logger.info("Successfully authenticated with Control D API")
            return True

        self.state = ValidityState.INVALID
        logger.error("===== AUTHENTICATION ERROR =====")
        logger.error("Failed to authenticate with Control D API. No profiles will be available.")
        logger.error("Please check your API token in the configuration and restart.")
        logger.error("================================")
        return False

    def start(self, schedule_refresh: bool = True) -> bool:
        """
        Validate the token, run discovery and arm the refresh timer.

        Args:
            schedule_refresh: Arm the periodic refresh after discovery

        Returns:
            True if the token is valid
        """
        if not self.validate():
            return False

        if self._scheduler is not None:
            logger.debug("Profile sync already started")
            return True

        self.discover_profiles()

        if schedule_refresh:
            self._scheduler = RefreshScheduler(
                self.refresh_profile_statuses, self.refresh_interval
            )
            self._scheduler.start()
        return True

    def stop(self) -> None:
        """Cancel the refresh timer and persist the registry."""
        if self._scheduler is not None:
            self._scheduler.stop()
        self.registry.flush()

    def discover_profiles(self) -> None:
        """Fetch all profiles and fully reconcile the registry."""
        if self.state is not ValidityState.VALID:
            logger.debug("Skipping profile discovery due to invalid API token")
            return

        profiles = self.client.list_profiles()
        logger.info(f"Found {len(profiles)} profiles")
        self.tracked_ids = reconcile(profiles, self.registry, self.client)

    def refresh_profile_statuses(self) -> None:
        """Push fresh filtering state into exposed entities without adding or removing any."""
        if self.state is not ValidityState.VALID:
            logger.debug("Skipping profile status update due to invalid API token")
            return

        logger.debug("Updating profile statuses")
        profiles = self.client.list_profiles()
        if not profiles:
            logger.warning("No profiles found during status update. Check your Control D account.")
            return

        count = refresh_statuses(profiles, self.tracked_ids, self.registry, self.client)
        logger.debug(f"Refreshed {count} profile(s)")

    def set_profile_filtering(self, profile_id: str, enabled: bool) -> bool:
        """
        Toggle filtering on one profile.

        Goes through the exposed entity when there is one so its cached
        state follows, otherwise calls the client directly.

        Raises:
            ServiceCommunicationError: If the exposed switch could not apply it
        """
        entity = self.registry.lookup(entity_identity(profile_id))
        if entity is None or entity.profile is None:
            return self.client.set_filtering_enabled(profile_id, enabled)

        if not isinstance(entity.handler, ProfileSwitch):
            ProfileSwitch(self.client, entity)
        entity.write(enabled)
        try:
            self.registry.update(entity)
        except RegistryError as e:
            logger.error(f"Filtering changed for {profile_id} but the cache was not updated: {e}")
        return True
