from __future__ import annotations
import base64
import hashlib
import secrets

from keymaster.errors import CredentialGenerationError


SECRET_BYTES = 48
SECRET_LENGTH = 48  # characters kept from the encoded value
FINGERPRINT_LENGTH = 32  # hex characters of the sha256 digest used as a label value


def fingerprint(secret: str) -> str:
    """Truncated sha256 of a secret; the only indexed identity of an api key."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def generate_credential(byte_length: int = SECRET_BYTES) -> tuple[str, str]:
    """Generate a new api key and its fingerprint.

    Random bytes are url-safe base64 encoded first and only then truncated to
    SECRET_LENGTH characters.

    Returns:
        Tuple of (secret, fingerprint)

    Raises:
        CredentialGenerationError: If the operating system entropy source fails
    """
    try:
        raw = secrets.token_bytes(byte_length)
    except (OSError, NotImplementedError) as e:
        raise CredentialGenerationError("Failed to generate API key") from e

    secret = base64.urlsafe_b64encode(raw).decode("ascii")[:SECRET_LENGTH]
    return secret, fingerprint(secret)
