"""Tests for ControlDClient class."""

import json
import logging
from unittest.mock import patch

import pytest
import requests
import responses

from controld_sync.client import (
    API_URL,
    ControlDClient,
    Profile,
    classify_error,
    is_filtering_enabled,
)
from controld_sync.exceptions import (
    APIError,
    AuthenticationError,
    NetworkError,
    TokenPermissionError,
    UnexpectedError,
)

FIXED_NOW = 1640995200


@pytest.fixture
def client():
    """Create a ControlDClient instance for testing."""
    return ControlDClient("api.test_token")


@pytest.fixture
def mock_profiles():
    """Sample /profiles response."""
    return {
        "success": True,
        "body": {
            "profiles": [
                {"PK": "prof1", "name": "Kids", "updated": 1640000000, "disable_ttl": 0},
                {"PK": "prof2", "name": "Work", "updated": 1640000000},
                {
                    "PK": "prof3",
                    "name": "Guests",
                    "updated": 1640000000,
                    "disable_ttl": FIXED_NOW + 3600,
                    "profile": {"da": {"status": 0, "do": 1}},
                },
                {
                    "PK": "prof4",
                    "name": "Old",
                    "updated": 1640000000,
                    "disable_ttl": FIXED_NOW - 3600,
                },
            ]
        },
    }


def permission_error_body():
    return {
        "success": False,
        "error": {
            "code": 40301,
            "message": "This token does not have access to this endpoint",
        },
    }


class TestIsFilteringEnabled:
    """Tests for the derived filtering flag."""

    def test_unset_ttl_is_enabled(self):
        assert is_filtering_enabled(None, FIXED_NOW) is True

    def test_zero_ttl_is_enabled(self):
        assert is_filtering_enabled(0, FIXED_NOW) is True

    def test_past_ttl_is_enabled(self):
        assert is_filtering_enabled(FIXED_NOW - 1, FIXED_NOW) is True

    def test_ttl_equal_to_now_is_enabled(self):
        """The boundary is inclusive: a window ending now is over."""
        assert is_filtering_enabled(FIXED_NOW, FIXED_NOW) is True

    def test_future_ttl_is_disabled(self):
        assert is_filtering_enabled(FIXED_NOW + 1, FIXED_NOW) is False


class TestProfileRecord:
    """Tests for Profile construction and serialization."""

    def test_from_api_defaults_name_to_pk(self):
        profile = Profile.from_api({"PK": "abc"}, FIXED_NOW)
        assert profile.name == "abc"
        assert profile.disable_ttl is None
        assert profile.filtering_enabled is True

    def test_from_api_missing_pk(self):
        with pytest.raises(KeyError):
            Profile.from_api({"name": "No PK"}, FIXED_NOW)

    def test_from_dict_keeps_cached_state(self):
        """A cached snapshot keeps its derived flag instead of recomputing it."""
        profile = Profile.from_dict(
            {"PK": "abc", "name": "A", "disable_ttl": 0, "filteringEnabled": False}
        )
        assert profile.filtering_enabled is False

    def test_to_dict_shape(self):
        profile = Profile.from_api(
            {"PK": "abc", "name": "A", "updated": 5, "profile": {"da": {"status": 1, "do": 0}}},
            FIXED_NOW,
        )
        assert profile.to_dict() == {
            "PK": "abc",
            "name": "A",
            "updated": 5,
            "disable_ttl": None,
            "filteringEnabled": True,
            "profile": {"da": {"status": 1, "do": 0}},
        }


class TestRequestHeaders:
    """Every call carries the bearer token and JSON content type."""

    @responses.activate
    def test_headers(self, client):
        responses.add(responses.GET, f"{API_URL}/profiles", json={"success": True}, status=200)
        client.validate_token()
        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Bearer api.test_token"
        assert request.headers["Content-Type"] == "application/json"


class TestValidateToken:
    """Tests for validate_token method."""

    @responses.activate
    def test_valid_token(self, client):
        responses.add(
            responses.GET, f"{API_URL}/profiles", json={"success": True, "body": {}}, status=200
        )
        assert client.validate_token() is True

    @responses.activate
    def test_success_false(self, client):
        responses.add(responses.GET, f"{API_URL}/profiles", json={"success": False}, status=200)
        assert client.validate_token() is False

    @responses.activate
    def test_non_200_success_status(self, client):
        """Only an HTTP 200 counts, even if the body claims success."""
        responses.add(responses.GET, f"{API_URL}/profiles", json={"success": True}, status=202)
        assert client.validate_token() is False

    @responses.activate
    def test_success_must_be_true(self, client):
        responses.add(responses.GET, f"{API_URL}/profiles", json={"success": "yes"}, status=200)
        assert client.validate_token() is False

    @responses.activate
    def test_permission_error(self, client, caplog):
        responses.add(
            responses.GET, f"{API_URL}/profiles", json=permission_error_body(), status=403
        )
        with caplog.at_level(logging.ERROR):
            assert client.validate_token() is False
        assert (
            "Control D API Permission Error: Your token does not have access to the profiles endpoint."
            in caplog.text
        )
        assert "profiles:read, profiles:write" in caplog.text

    @responses.activate
    def test_generic_403(self, client, caplog):
        responses.add(
            responses.GET, f"{API_URL}/profiles", json={"message": "Forbidden"}, status=403
        )
        with caplog.at_level(logging.ERROR):
            assert client.validate_token() is False
        assert "Control D API Authentication Error" in caplog.text
        assert "Permission Error" not in caplog.text

    @responses.activate
    def test_network_error(self, client, caplog):
        responses.add(
            responses.GET,
            f"{API_URL}/profiles",
            body=requests.exceptions.ConnectionError("Network Error"),
        )
        with caplog.at_level(logging.ERROR):
            assert client.validate_token() is False
        assert "Network Error" in caplog.text

    def test_unexpected_error(self, client, caplog):
        with patch("controld_sync.client.requests.get", side_effect=RuntimeError("boom")):
            with caplog.at_level(logging.ERROR):
                assert client.validate_token() is False
        assert "boom" in caplog.text


class TestListProfiles:
    """Tests for list_profiles method."""

    @responses.activate
    def test_profiles_with_derived_state(self, client, mock_profiles):
        responses.add(responses.GET, f"{API_URL}/profiles", json=mock_profiles, status=200)
        with patch("controld_sync.client.time.time", return_value=FIXED_NOW):
            profiles = client.list_profiles()

        states = {p.pk: p.filtering_enabled for p in profiles}
        assert states == {"prof1": True, "prof2": True, "prof3": False, "prof4": True}

    @responses.activate
    def test_keeps_raw_settings(self, client, mock_profiles):
        responses.add(responses.GET, f"{API_URL}/profiles", json=mock_profiles, status=200)
        profiles = client.list_profiles()
        guests = next(p for p in profiles if p.pk == "prof3")
        assert guests.settings == {"da": {"status": 0, "do": 1}}

    @responses.activate
    def test_empty_profiles_logs_warning(self, client, caplog):
        responses.add(
            responses.GET,
            f"{API_URL}/profiles",
            json={"success": True, "body": {"profiles": []}},
            status=200,
        )
        with caplog.at_level(logging.WARNING):
            assert client.list_profiles() == []
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    @pytest.mark.parametrize(
        "payload",
        [
            {"success": False, "body": {"profiles": []}},
            {"success": True},
            {"success": True, "body": {"profiles": "nope"}},
            {"success": True, "body": {}},
            ["not", "an", "object"],
        ],
    )
    @responses.activate
    def test_malformed_response(self, client, payload, caplog):
        responses.add(responses.GET, f"{API_URL}/profiles", json=payload, status=200)
        with caplog.at_level(logging.WARNING):
            assert client.list_profiles() == []
        assert "Unexpected response format" in caplog.text

    @responses.activate
    def test_invalid_json(self, client):
        responses.add(responses.GET, f"{API_URL}/profiles", body="<html>", status=200)
        assert client.list_profiles() == []

    @responses.activate
    def test_skips_malformed_entries(self, client):
        responses.add(
            responses.GET,
            f"{API_URL}/profiles",
            json={"success": True, "body": {"profiles": [{"name": "no pk"}, {"PK": "ok"}]}},
            status=200,
        )
        profiles = client.list_profiles()
        assert [p.pk for p in profiles] == ["ok"]

    @responses.activate
    def test_permission_error(self, client, caplog):
        responses.add(
            responses.GET, f"{API_URL}/profiles", json=permission_error_body(), status=403
        )
        with caplog.at_level(logging.ERROR):
            assert client.list_profiles() == []
        assert "Permission Error" in caplog.text

    @responses.activate
    def test_server_error(self, client, caplog):
        responses.add(
            responses.GET, f"{API_URL}/profiles", json={"error": "down"}, status=500
        )
        with caplog.at_level(logging.ERROR):
            assert client.list_profiles() == []
        assert "Status 500" in caplog.text

    @responses.activate
    def test_timeout(self, client):
        responses.add(
            responses.GET, f"{API_URL}/profiles", body=requests.exceptions.Timeout()
        )
        assert client.list_profiles() == []
        assert len(responses.calls) == 1


class TestSetFilteringEnabled:
    """Tests for set_filtering_enabled method."""

    @responses.activate
    def test_enable_sends_zero(self, client):
        responses.add(
            responses.PUT, f"{API_URL}/profiles/prof1", json={"success": True}, status=200
        )
        with patch("controld_sync.client.time.time", return_value=FIXED_NOW):
            assert client.set_filtering_enabled("prof1", True) is True
        assert json.loads(responses.calls[0].request.body) == {"disable_ttl": 0}

    @responses.activate
    def test_disable_sends_24h_window(self, client):
        responses.add(
            responses.PUT, f"{API_URL}/profiles/prof1", json={"success": True}, status=200
        )
        with patch("controld_sync.client.time.time", return_value=FIXED_NOW + 0.75):
            assert client.set_filtering_enabled("prof1", False) is True
        assert json.loads(responses.calls[0].request.body) == {"disable_ttl": 1641081600}

    @responses.activate
    def test_success_false(self, client):
        responses.add(
            responses.PUT, f"{API_URL}/profiles/prof1", json={"success": False}, status=200
        )
        assert client.set_filtering_enabled("prof1", True) is False

    @responses.activate
    def test_403_is_authentication_error(self, client, caplog):
        responses.add(
            responses.PUT, f"{API_URL}/profiles/prof1", json={"message": "no"}, status=403
        )
        with caplog.at_level(logging.ERROR):
            assert client.set_filtering_enabled("prof1", False) is False
        assert "Authentication Error" in caplog.text

    @responses.activate
    def test_network_error(self, client):
        responses.add(
            responses.PUT,
            f"{API_URL}/profiles/prof1",
            body=requests.exceptions.ConnectionError("unreachable"),
        )
        assert client.set_filtering_enabled("prof1", True) is False
        assert len(responses.calls) == 1

    def test_invalid_profile_id(self, client):
        assert client.set_filtering_enabled("../devices", True) is False


class TestDevices:
    """Tests for list_devices and assign_device_profile."""

    @responses.activate
    def test_list_devices(self, client):
        responses.add(
            responses.GET,
            f"{API_URL}/devices",
            json={
                "success": True,
                "body": {
                    "devices": [
                        {
                            "PK": "dev1",
                            "name": "Laptop",
                            "profile": {"PK": "prof1", "name": "Kids"},
                            "status": 1,
                        }
                    ]
                },
            },
            status=200,
        )
        devices = client.list_devices()
        assert len(devices) == 1
        assert devices[0].pk == "dev1"
        assert devices[0].profile_pk == "prof1"
        assert devices[0].profile_name == "Kids"

    @responses.activate
    def test_list_devices_malformed(self, client):
        responses.add(responses.GET, f"{API_URL}/devices", json={"success": True}, status=200)
        assert client.list_devices() == []

    @responses.activate
    def test_list_devices_skips_non_object_profile(self, client):
        responses.add(
            responses.GET,
            f"{API_URL}/devices",
            json={
                "success": True,
                "body": {
                    "devices": [
                        {"PK": "dev1", "profile": "prof1"},
                        {"PK": "dev2", "profile": ["prof1"]},
                        {"PK": "dev3", "profile": {"PK": "prof2", "name": "Kids"}},
                    ]
                },
            },
            status=200,
        )
        devices = client.list_devices()
        assert [d.pk for d in devices] == ["dev1", "dev2", "dev3"]
        assert devices[0].profile_pk is None
        assert devices[1].profile_name is None
        assert devices[2].profile_pk == "prof2"

    @responses.activate
    def test_list_devices_403_code_is_not_permission_error(self, client, caplog):
        """The permission-error code only applies to the profiles endpoint."""
        responses.add(
            responses.GET, f"{API_URL}/devices", json=permission_error_body(), status=403
        )
        with caplog.at_level(logging.ERROR):
            assert client.list_devices() == []
        assert "Authentication Error" in caplog.text
        assert "Permission Error" not in caplog.text

    @responses.activate
    def test_assign_device_profile(self, client):
        responses.add(
            responses.PUT, f"{API_URL}/devices/dev1", json={"success": True}, status=200
        )
        assert client.assign_device_profile("dev1", "prof2") is True
        assert json.loads(responses.calls[0].request.body) == {"profile": {"PK": "prof2"}}

    @responses.activate
    def test_assign_device_profile_failure(self, client):
        responses.add(
            responses.PUT, f"{API_URL}/devices/dev1", json={"error": "bad"}, status=400
        )
        assert client.assign_device_profile("dev1", "prof2") is False


class TestClassifyError:
    """Tests for classify_error."""

    def _http_error(self, status, body):
        response = requests.Response()
        response.status_code = status
        response._content = json.dumps(body).encode()
        return requests.exceptions.HTTPError(response=response)

    def test_permission_code_on_profiles(self):
        error = classify_error(self._http_error(403, permission_error_body()), "/profiles/x")
        assert isinstance(error, TokenPermissionError)

    def test_403_without_code(self):
        error = classify_error(self._http_error(403, {}), "/profiles")
        assert isinstance(error, AuthenticationError)
        assert not isinstance(error, TokenPermissionError)

    def test_401(self):
        error = classify_error(self._http_error(401, {}), "/profiles")
        assert type(error) is AuthenticationError

    def test_permission_code_on_401_is_auth_error(self):
        error = classify_error(self._http_error(401, permission_error_body()), "/profiles")
        assert type(error) is AuthenticationError

    def test_api_error_keeps_status_and_body(self):
        error = classify_error(self._http_error(404, {"error": "missing"}), "/profiles/x")
        assert isinstance(error, APIError)
        assert error.status_code == 404
        assert error.body == {"error": "missing"}

    def test_no_response(self):
        error = classify_error(requests.exceptions.ConnectionError("down"), "/profiles")
        assert isinstance(error, NetworkError)

    def test_other_exception(self):
        error = classify_error(ValueError("weird"), "/profiles")
        assert isinstance(error, UnexpectedError)
