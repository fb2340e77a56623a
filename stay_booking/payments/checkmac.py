"""
ECPay check value (CheckMacValue) computation.

The check value is a keyed hash over every request field:

1. drop ``CheckMacValue`` and stringify values (None becomes "")
2. sort keys case-insensitively
3. join as ``HashKey=<key>&k1=v1&...&HashIV=<iv>``
4. form-urlencode (space -> '+', ``-_.!*()`` left as is), then lowercase
5. SHA-256 (MD5 when EncryptType is 0) and uppercase the hex digest
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any, Mapping
from urllib.parse import quote_plus

CHECK_VALUE_FIELD = "CheckMacValue"


def canonical_string(params: Mapping[str, Any], hash_key: str, hash_iv: str) -> str:
    """Build the encoded, lowercased string that gets hashed."""
    fields = {
        key: "" if value is None else str(value)
        for key, value in params.items()
        if key != CHECK_VALUE_FIELD
    }
    pairs = "&".join(f"{key}={fields[key]}" for key in sorted(fields, key=str.lower))
    raw = f"HashKey={hash_key}&{pairs}&HashIV={hash_iv}"
    return quote_plus(raw, safe="!*()").lower()


def compute_check_value(params: Mapping[str, Any], hash_key: str, hash_iv: str) -> str:
    """
    Compute the check value for a parameter set.

    Args:
        params: Request or callback fields (``CheckMacValue`` is ignored if present)
        hash_key: Merchant HashKey
        hash_iv: Merchant HashIV

    Returns:
        str: Uppercase hex digest

    Example:
        >>> compute_check_value({"MerchantID": "2000132"}, "key", "iv")  # doctest: +SKIP
        'A1B2...'
    """
    encoded = canonical_string(params, hash_key, hash_iv).encode("utf-8")
    if str(params.get("EncryptType", "1")) == "0":
        digest = hashlib.md5(encoded).hexdigest()
    else:
        digest = hashlib.sha256(encoded).hexdigest()
    return digest.upper()


def check_value_matches(params: Mapping[str, Any], hash_key: str, hash_iv: str) -> bool:
    """Constant-time, case-insensitive comparison of the received and recomputed values."""
    received = params.get(CHECK_VALUE_FIELD)
    if not received:
        return False
    expected = compute_check_value(params, hash_key, hash_iv)
    return hmac.compare_digest(str(received).upper().encode(), expected.encode())
