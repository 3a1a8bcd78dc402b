"""
Registry authentication helpers.

The Docker Engine accepts registry credentials in the X-Registry-Auth header:
a URL-safe base64 encoding of a JSON {"username", "password"} document.
Tokens are built on every call that needs one and are never cached or logged.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Optional

from image_migrator.error_utils import create_auth_encoding_error


def build_auth_token(username: str, password: str) -> Optional[str]:
    """Build the engine auth token for a username/password pair.

    Args:
        username: Registry username, may be empty
        password: Registry password, may be empty

    Returns:
        None when both values are empty (anonymous access), otherwise the
        encoded token

    Raises:
        AuthEncodingError: If the credentials cannot be encoded
    """
    if not username and not password:
        return None

    try:
        payload = json.dumps(
            {"username": username, "password": password},
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")
    except (TypeError, ValueError) as e:
        raise create_auth_encoding_error(str(username), e) from e


@dataclass(frozen=True)
class RegistryCredentials:
    """Username/password for one side (pull or push) of a migration."""

    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def is_anonymous(self) -> bool:
        return not self.username and not self.password

    def auth_token(self) -> Optional[str]:
        return build_auth_token(self.username, self.password)
