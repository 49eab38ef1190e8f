"""ETag computation for backends that do not supply one natively."""

from __future__ import annotations

import base64
import hashlib

# A base64-encoded SHA-1 digest is 28 characters including its padding.
ETAG_DIGEST_LENGTH = 28


def compute_etag(data: bytes) -> str:
    """Return ``"<len-hex>-<digest>"`` for ``data``.

    The digest is the base64-encoded SHA-1 of the content truncated to
    ``ETAG_DIGEST_LENGTH`` characters.
    """
    digest = base64.b64encode(hashlib.sha1(data).digest()).decode("ascii")  # nosec B324
    return f"{len(data):x}-{digest[:ETAG_DIGEST_LENGTH]}"
