"""Common utilities shared between Control D Sync modules."""

import fcntl
import os
import re
import stat
from datetime import datetime
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir


# =============================================================================
# SHARED CONSTANTS
# =============================================================================

APP_NAME = "controld-sync"

# Secure file permissions (owner read/write only)
SECURE_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0o600

# Control D API token: "api." prefix is typical, but accept any opaque token
API_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,}$")

# Control D profile/device identifiers (PK values)
RESOURCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


# =============================================================================
# DIRECTORY MANAGEMENT
# =============================================================================


def get_data_dir() -> Path:
    """
    Get the data directory path for logs and state files.

    Returns:
        Path to the data directory (~/.local/share/controld-sync on Linux,
        ~/Library/Application Support/controld-sync on macOS)
    """
    return Path(user_data_dir(APP_NAME))


def get_log_dir() -> Path:
    """Get the log directory path (data_dir/logs)."""
    return get_data_dir() / "logs"


def get_audit_log_file() -> Path:
    """Get the audit log file path."""
    return get_log_dir() / "audit.log"


def ensure_log_dir() -> None:
    """Ensure log directory exists. Called lazily when needed."""
    get_log_dir().mkdir(parents=True, exist_ok=True)


# =============================================================================
# VALIDATION FUNCTIONS
# =============================================================================


def validate_api_token(token: Optional[str]) -> bool:
    """
    Validate Control D API token format.

    Args:
        token: API token string to validate

    Returns:
        True if valid format, False otherwise
    """
    if not token or not isinstance(token, str):
        return False
    return API_TOKEN_PATTERN.match(token.strip()) is not None


def validate_resource_id(resource_id: Optional[str]) -> bool:
    """Check that a profile or device identifier is safe to put in a URL path."""
    if not resource_id or not isinstance(resource_id, str):
        return False
    return RESOURCE_ID_PATTERN.match(resource_id) is not None


# =============================================================================
# PARSING FUNCTIONS
# =============================================================================


def parse_env_value(value: str) -> str:
    """
    Parse .env value, handling quotes and whitespace.

    Args:
        value: Raw value from .env file

    Returns:
        Cleaned value with quotes removed
    """
    value = value.strip()
    if len(value) >= 2:
        if (value.startswith('"') and value.endswith('"')) or \
           (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]
    return value


def safe_int(value: Optional[str], default: int, name: str = "value", minimum: int = 0) -> int:
    """
    Safely convert a string to int with validation.

    Args:
        value: String value to convert (can be None)
        default: Default value if value is None or empty
        name: Name of the value for error messages
        minimum: Smallest accepted value

    Returns:
        Converted integer or default value

    Raises:
        ConfigurationError: If value is not a valid integer >= minimum
    """
    from .exceptions import ConfigurationError

    if value is None or value.strip() == "":
        return default

    try:
        result = int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a valid integer, got: {value}")

    if result < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got: {value}")
    return result


# =============================================================================
# FILE I/O FUNCTIONS
# =============================================================================


def audit_log(action: str, detail: str = "") -> None:
    """
    Log an action to the audit log file with secure permissions and file locking.

    Args:
        action: The action being logged (e.g., 'ENABLE', 'DISABLE', 'ASSIGN')
        detail: Additional details about the action
    """
    audit_file = get_audit_log_file()
    try:
        ensure_log_dir()

        if not audit_file.exists():
            audit_file.touch(mode=SECURE_FILE_MODE)

        log_entry = " | ".join([datetime.now().isoformat(), action, detail]) + "\n"

        # Exclusive lock so a running daemon and a manual command don't interleave
        with open(audit_file, "a") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(log_entry)
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    except OSError:
        pass  # Audit logging is best effort


def write_secure_file(path: Path, content: str) -> None:
    """
    Write content to a file with secure permissions (0o600).

    Args:
        path: Path to the file
        content: Content to write

    Raises:
        OSError: If the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists():
        os.chmod(path, SECURE_FILE_MODE)

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECURE_FILE_MODE)
    fd_owned = False
    try:
        f = os.fdopen(fd, "w")
        fd_owned = True  # os.fdopen now owns the fd
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        try:
            f.write(content)
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        f.close()
    except Exception:
        if not fd_owned:
            os.close(fd)
        raise
