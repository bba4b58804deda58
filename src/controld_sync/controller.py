"""Switch controller bridging an exposed entity to a Control D profile."""

import logging

from .client import ControlDClient, Profile
from .exceptions import ServiceCommunicationError
from .registry import ExposedEntity, SwitchHandler

MANUFACTURER = "Control D"
MODEL = "DNS Profile"

logger = logging.getLogger(__name__)


class ProfileSwitch(SwitchHandler):
    """
    On/off switch for one profile: on means the profile is filtering.

    Creating a ProfileSwitch binds it as the entity's handler and pushes
    the cached state to the entity, so it is safe to construct a new one
    for an entity on every reconciliation pass.
    """

    def __init__(self, client: ControlDClient, entity: ExposedEntity) -> None:
        self.client = client
        self.entity = entity

        self.entity.info = {
            "manufacturer": MANUFACTURER,
            "model": MODEL,
            "serial_number": self.profile.pk,
        }
        self.entity.handler = self
        self.push_status()

    @property
    def profile(self) -> Profile:
        return self.entity.context["profile"]

    def get(self) -> bool:
        return self.profile.filtering_enabled is True

    def set(self, desired: bool) -> None:
        """
        Enable or suspend filtering on the remote profile.

        Raises:
            ServiceCommunicationError: If the API did not confirm the change
        """
        profile = self.profile
        state = "enabled" if desired else "disabled"
        logger.debug(f"Setting profile {profile.name} filtering to {state}")

        if not self.client.set_filtering_enabled(profile.pk, desired):
            action = "enable" if desired else "disable"
            logger.error(f"Failed to {action} filtering for profile: {profile.name}")
            raise ServiceCommunicationError(
                f"Failed to {action} filtering for profile: {profile.name}"
            )

        profile.filtering_enabled = desired
        if profile.settings and isinstance(profile.settings.get("da"), dict):
            profile.settings["da"]["status"] = 1 if desired else 0
        logger.info(f"Successfully {state} filtering for profile: {profile.name}")

    def push_status(self) -> None:
        self.entity.on = self.get()
