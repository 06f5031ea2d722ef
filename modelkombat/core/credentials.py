"""
Credential Obfuscation
======================

Reversible encoding of the OpenRouter API key before it is persisted.

WARNING: this is obfuscation, not encryption. The key is Base64-encoded and the
resulting text reversed, which keeps it from being readable at a glance in a config
file or a Firestore console. Anyone holding the stored value can recover the key.
Treat the persisted configuration as a secret.

Author: Model Kombat Project
"""

import base64
import binascii
import logging

logger = logging.getLogger(__name__)


def encode_credential(plain: str) -> str:
    """
    Obfuscate a credential for storage.

    Args:
        plain: The API key as entered by the user.

    Returns:
        str: Base64 of the UTF-8 bytes, reversed.
    """
    encoded = base64.b64encode(plain.encode("utf-8")).decode("ascii")
    return encoded[::-1]


def decode_credential(opaque: str) -> str:
    """
    Recover a credential produced by :func:`encode_credential`.

    Malformed input never raises. An empty string is returned instead, which callers
    must treat as "no usable credential" and prompt for re-entry.
    """
    if not isinstance(opaque, str) or not opaque:
        return ""
    try:
        raw = base64.b64decode(opaque[::-1].encode("ascii"), validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        logger.warning(f"Stored credential could not be decoded: {type(e).__name__}")
        return ""
