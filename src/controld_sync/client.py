"""Control D API client for DNS filtering profiles and devices."""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from .common import validate_resource_id
from .config import DEFAULT_TIMEOUT
from .exceptions import (
    APIError,
    AuthenticationError,
    ClientError,
    NetworkError,
    TokenPermissionError,
    UnexpectedError,
)


# =============================================================================
# CONSTANTS
# =============================================================================

API_URL = "https://api.controld.com"
DASHBOARD_URL = "https://controld.com/dashboard"

# Error code returned with a 403 when the token is not scoped for /profiles
PERMISSION_ERROR_CODE = 40301

# Disabling filtering suspends it for 24 hours
DISABLE_DURATION = 86400

logger = logging.getLogger(__name__)


def is_filtering_enabled(disable_ttl: Optional[int], now: int) -> bool:
    """
    Derive the filtering state of a profile from its disable window.

    Filtering is active unless the profile carries a disable_ttl in the future.
    A disable_ttl of 0 or None means filtering was never suspended, and an
    expired window (disable_ttl <= now) means it has resumed.

    Args:
        disable_ttl: Epoch seconds until which filtering is suspended
        now: Current epoch seconds

    Returns:
        True if the profile is filtering, False otherwise
    """
    return disable_ttl is None or disable_ttl == 0 or disable_ttl <= now


def _parse_ttl(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid disable_ttl: {value!r}")
    return int(value)


# =============================================================================
# RECORDS
# =============================================================================


@dataclass
class Profile:
    """A Control D profile as seen at fetch time."""

    pk: str
    name: str
    updated: int = 0
    disable_ttl: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None
    filtering_enabled: bool = True

    @classmethod
    def from_api(cls, raw: Dict[str, Any], now: int) -> "Profile":
        """
        Build a profile from a raw /profiles entry.

        Args:
            raw: Profile object as returned by the API
            now: Current epoch seconds used to derive filtering_enabled

        Raises:
            KeyError: If the entry has no PK
            TypeError, ValueError: If fields have the wrong type
        """
        if not isinstance(raw, dict):
            raise TypeError(f"profile entry must be an object, got {type(raw).__name__}")

        pk = str(raw["PK"])
        disable_ttl = _parse_ttl(raw.get("disable_ttl"))
        settings = raw.get("profile")
        return cls(
            pk=pk,
            name=raw.get("name") or pk,
            updated=int(raw.get("updated") or 0),
            disable_ttl=disable_ttl,
            settings=settings if isinstance(settings, dict) else None,
            filtering_enabled=is_filtering_enabled(disable_ttl, now),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        """Restore a profile from to_dict() output, keeping the cached state."""
        if "filteringEnabled" not in data:
            return cls.from_api(data, int(time.time()))
        profile = cls.from_api(data, 0)
        profile.filtering_enabled = bool(data["filteringEnabled"])
        return profile

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in the API's shape plus the derived flag."""
        data: Dict[str, Any] = {
            "PK": self.pk,
            "name": self.name,
            "updated": self.updated,
            "disable_ttl": self.disable_ttl,
            "filteringEnabled": self.filtering_enabled,
        }
        if self.settings is not None:
            data["profile"] = self.settings
        return data


@dataclass
class Device:
    """A Control D device (resolver endpoint) and the profile it uses."""

    pk: str
    name: str
    profile_pk: Optional[str] = None
    profile_name: Optional[str] = None
    status: int = 0

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Device":
        if not isinstance(raw, dict):
            raise TypeError(f"device entry must be an object, got {type(raw).__name__}")

        profile = raw.get("profile")
        if not isinstance(profile, dict):
            profile = {}
        return cls(
            pk=str(raw["PK"]),
            name=raw.get("name") or str(raw["PK"]),
            profile_pk=profile.get("PK"),
            profile_name=profile.get("name"),
            status=int(raw.get("status") or 0),
        )


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_code(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict) or error.get("code") is None:
        return None
    return str(error["code"])


def classify_error(exc: Exception, endpoint: str) -> ClientError:
    """
    Map a failed request to the client error taxonomy.

    Args:
        exc: Exception raised while performing the request
        endpoint: API endpoint path the request was sent to

    Returns:
        TokenPermissionError, AuthenticationError, APIError, NetworkError
        or UnexpectedError
    """
    if isinstance(exc, ClientError):
        return exc

    if isinstance(exc, requests.exceptions.RequestException):
        response = exc.response
        if response is None:
            return NetworkError(str(exc) or exc.__class__.__name__)

        status = response.status_code
        body = _response_body(response)
        if status in (401, 403):
            if (
                status == 403
                and endpoint.startswith("/profiles")
                and _error_code(body) == str(PERMISSION_ERROR_CODE)
            ):
                return TokenPermissionError(f"Token has no access to {endpoint}")
            return AuthenticationError(f"Token rejected for {endpoint} (HTTP {status})")

        try:
            message = json.dumps(body)
        except (TypeError, ValueError):
            message = str(body)
        return APIError(f"Status {status}, Message: {message}", status, body)

    return UnexpectedError(str(exc) or exc.__class__.__name__)


def log_client_error(error: ClientError, action: str) -> None:
    """Log a classified client error with remediation hints where useful."""
    if isinstance(error, TokenPermissionError):
        logger.error(
            "Control D API Permission Error: Your token does not have access to the profiles endpoint."
        )
        logger.error("Please create a new token with these permissions: profiles:read, profiles:write")
        logger.error(f"Visit {DASHBOARD_URL} (Settings > API) to update your token.")
    elif isinstance(error, AuthenticationError):
        logger.error(
            f"Control D API Authentication Error: Failed to {action}. "
            "Your API token appears to be invalid or lacks required permissions."
        )
        logger.error(f"Visit {DASHBOARD_URL} to generate a new token if needed.")
    elif isinstance(error, APIError):
        logger.error(f"API Error while trying to {action}: {error}")
    elif isinstance(error, NetworkError):
        logger.error(f"Network Error while trying to {action}: {error}")
    else:
        logger.error(f"Control D API Error while trying to {action}: {error}")


# =============================================================================
# CONTROL D CLIENT
# =============================================================================


class ControlDClient:
    """Client for the Control D profiles and devices API."""

    def __init__(self, api_token: str, timeout: int = DEFAULT_TIMEOUT) -> None:
        """
        Initialize the Control D client.

        Args:
            api_token: Control D API token
            timeout: Request timeout in seconds
        """
        self.timeout = timeout
        self.headers: Dict[str, str] = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    def request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, Any]:
        """
        Make a single HTTP request to the Control D API.

        Args:
            method: HTTP method (GET, PUT)
            endpoint: API endpoint path
            data: Optional JSON body for PUT requests

        Returns:
            Tuple of (status code, decoded JSON body or None if not JSON)

        Raises:
            ClientError: Classified failure (see classify_error)
        """
        url = f"{API_URL}{endpoint}"

        if method not in ("GET", "PUT"):
            raise UnexpectedError(f"Unsupported HTTP method: {method}")

        try:
            if method == "GET":
                response = requests.get(url, headers=self.headers, timeout=self.timeout)
            else:
                response = requests.put(
                    url, headers=self.headers, json=data, timeout=self.timeout
                )
            response.raise_for_status()
        except Exception as e:
            raise classify_error(e, endpoint) from e

        if not response.text:
            return response.status_code, None

        try:
            return response.status_code, response.json()
        except ValueError as e:
            logger.warning(f"Invalid JSON response for {method} {endpoint}: {e}")
            return response.status_code, None

    @staticmethod
    def _extract_items(payload: Any, key: str) -> Optional[List[Any]]:
        """Return payload['body'][key] if the envelope is well formed."""
        if not isinstance(payload, dict) or not payload.get("success"):
            return None
        body = payload.get("body")
        if not isinstance(body, dict):
            return None
        items = body.get(key)
        return items if isinstance(items, list) else None

    def _put(self, endpoint: str, data: Dict[str, Any], action: str) -> bool:
        try:
            status, payload = self.request("PUT", endpoint, data)
        except ClientError as e:
            log_client_error(e, action)
            return False

        if status == 200 and isinstance(payload, dict) and payload.get("success"):
            logger.debug(f"Succeeded: {action}")
            return True

        logger.warning(f"Unexpected status code or response when trying to {action}: {status}")
        return False

    # -------------------------------------------------------------------------
    # PROFILE METHODS
    # -------------------------------------------------------------------------

    def validate_token(self) -> bool:
        """
        Check that the API token can read profiles.

        Returns:
            True only for an HTTP 200 answer whose body has success == true
        """
        try:
            status, payload = self.request("GET", "/profiles")
        except ClientError as e:
            log_client_error(e, "validate the API token")
            return False

        return status == 200 and isinstance(payload, dict) and payload.get("success") is True

    def list_profiles(self) -> List[Profile]:
        """
        Fetch all profiles and derive their filtering state.

        Returns:
            List of profiles, empty on any failure or malformed response
        """
        try:
            _, payload = self.request("GET", "/profiles")
        except ClientError as e:
            log_client_error(e, "fetch profiles")
            return []

        raw_profiles = self._extract_items(payload, "profiles")
        if raw_profiles is None:
            logger.warning("Unexpected response format from Control D API - profiles endpoint")
            return []

        if not raw_profiles:
            logger.warning("Control D API returned no profiles")
            return []

        now = int(time.time())
        profiles: List[Profile] = []
        for raw in raw_profiles:
            try:
                profiles.append(Profile.from_api(raw, now))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed profile entry: {e}")

        logger.debug(f"Fetched {len(profiles)} profile(s)")
        return profiles

    def set_filtering_enabled(self, profile_id: str, enabled: bool) -> bool:
        """
        Enable or suspend filtering on a profile.

        Enabling clears the disable window (disable_ttl = 0). Disabling
        suspends filtering for 24 hours from now.

        Args:
            profile_id: Profile PK
            enabled: Desired filtering state

        Returns:
            True if the API confirmed the change, False otherwise
        """
        if not validate_resource_id(profile_id):
            logger.error(f"Invalid profile ID: {profile_id!r}")
            return False

        if enabled:
            disable_ttl = 0
        else:
            disable_ttl = int(time.time()) + DISABLE_DURATION

        state = "enable" if enabled else "disable"
        logger.debug(f"Setting profile {profile_id} disable_ttl to {disable_ttl}")
        return self._put(
            f"/profiles/{profile_id}",
            {"disable_ttl": disable_ttl},
            f"{state} filtering for profile {profile_id}",
        )

    # -------------------------------------------------------------------------
    # DEVICE METHODS
    # -------------------------------------------------------------------------

    def list_devices(self) -> List[Device]:
        """
        Fetch all devices with their assigned profile.

        Returns:
            List of devices, empty on any failure or malformed response
        """
        try:
            _, payload = self.request("GET", "/devices")
        except ClientError as e:
            log_client_error(e, "fetch devices")
            return []

        raw_devices = self._extract_items(payload, "devices")
        if raw_devices is None:
            logger.warning("Unexpected response format from Control D API - devices endpoint")
            return []

        devices: List[Device] = []
        for raw in raw_devices:
            try:
                devices.append(Device.from_api(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed device entry: {e}")
        return devices

    def assign_device_profile(self, device_id: str, profile_id: str) -> bool:
        """
        Point a device at another profile.

        Args:
            device_id: Device PK
            profile_id: Profile PK to assign

        Returns:
            True if the API confirmed the change, False otherwise
        """
        if not validate_resource_id(device_id):
            logger.error(f"Invalid device ID: {device_id!r}")
            return False

        logger.debug(f"Setting device {device_id} to use profile {profile_id}")
        return self._put(
            f"/devices/{device_id}",
            {"profile": {"PK": profile_id}},
            f"set device profile ({device_id} to {profile_id})",
        )
