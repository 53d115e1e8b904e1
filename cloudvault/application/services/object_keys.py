"""Object key scheme: users/{user_id}/{unix_ms}-{random_hex}-{sanitized_base}{.ext}.

Keys never depend on the backend and carry only a sanitized form of the
original filename, so user input cannot shape the storage namespace.
"""

import os
import re
from collections.abc import Callable

from cloudvault.core.constants import KEY_SEP, USER_KEY_PREFIX
from cloudvault.domain.exceptions import ValidationException
from cloudvault.shared.utils.datetime import utc_now_ms
from cloudvault.shared.utils.generators import generate_short_hex

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_UNSAFE_RE = re.compile(r"[^a-z0-9]+")
_EXT_UNSAFE_RE = re.compile(r"[^a-z0-9]")
_KEY_RE = re.compile(
    r"^" + USER_KEY_PREFIX + r"/(?P<user_id>[A-Za-z0-9_-]+)/"
    r"(?P<ms>[0-9]+)-(?P<rand>[0-9a-f]+)-(?P<name>[a-z0-9.-]+)$"
)

MAX_BASE_LENGTH = 100
MAX_EXT_LENGTH = 16


def _sanitize_base(base: str) -> str:
    cleaned = _UNSAFE_RE.sub("-", base.lower()).strip("-")
    cleaned = cleaned[:MAX_BASE_LENGTH].strip("-")
    return cleaned or "file"


def _sanitize_ext(ext: str) -> str:
    cleaned = _EXT_UNSAFE_RE.sub("", ext.lower())[:MAX_EXT_LENGTH]
    return f".{cleaned}" if cleaned else ""


def validate_user_id(user_id: str) -> str:
    """Return user_id if it is safe to embed in a key, else raise ValidationException."""
    if not user_id or not _USER_ID_RE.match(user_id):
        raise ValidationException("Invalid user id for object key", field="user_id")
    return user_id


class ObjectKeyGenerator:
    """Generates write-once object keys. Clock and randomness are injectable."""

    def __init__(
        self,
        clock_ms: Callable[[], int] | None = None,
        random_hex: Callable[[], str] | None = None,
    ) -> None:
        self._clock_ms = clock_ms or utc_now_ms
        self._random_hex = random_hex or generate_short_hex

    def generate_key(self, user_id: str, original_name: str) -> str:
        validate_user_id(user_id)
        name = os.path.basename((original_name or "").replace("\\", "/"))
        base, ext = os.path.splitext(name)
        return (
            f"{self.user_prefix(user_id)}{self._clock_ms()}-{self._random_hex()}-"
            f"{_sanitize_base(base)}{_sanitize_ext(ext)}"
        )

    @staticmethod
    def user_prefix(user_id: str) -> str:
        """Return the key prefix under which all of user_id's objects live."""
        validate_user_id(user_id)
        return f"{USER_KEY_PREFIX}{KEY_SEP}{user_id}{KEY_SEP}"

    @staticmethod
    def owner_of(key: str) -> str:
        """Return the user id embedded in key. Raises ValidationException for foreign keys."""
        match = _KEY_RE.match(key)
        if not match:
            raise ValidationException("Not a recognized object key", field="key")
        return match.group("user_id")
