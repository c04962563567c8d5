"""ARGUS — Meta Error Translator.

Turns raw Meta API errors into messages an advertiser can act on.
Used when recording a failure so the report shows something better than
"(#100) Invalid parameter".
"""

import re
from typing import NamedTuple

RATE_LIMIT_CODES = {4, 17, 613, 80004}
PERMISSION_CODES = {190, 200}
ACCOUNT_RESTRICTED_CODE = 2635
POLICY_CODE = 1487741
INVALID_PARAM_CODE = 100


class TranslatedError(NamedTuple):
    user_friendly_message: str
    error_code: str
    category: str
    retryable: bool


def simplify_message(message: str) -> str:
    """Strip error-code prefixes and stack references, truncate to 200 chars."""
    simplified = re.sub(r"\(#\d+\)", "", message)
    simplified = re.sub(r"\bat\s+[\w.]+:\d+:\d+", "", simplified)
    simplified = re.sub(r"\bError:\s*", "", simplified).strip()
    if len(simplified) > 200:
        simplified = simplified[:197] + "..."
    return simplified


def translate_error(error: BaseException) -> TranslatedError:
    """Classify an exception raised by the Meta connector (or anything else)."""
    code = getattr(error, "error_code", 0) or 0
    status_code = getattr(error, "status_code", 0) or 0
    message = str(error) or error.__class__.__name__
    lowered = message.lower()

    if code in RATE_LIMIT_CODES or status_code == 429:
        return TranslatedError(
            "Meta rate limit reached. Please wait a few minutes before retrying.",
            str(code or status_code),
            "rate_limit",
            True,
        )
    if code == INVALID_PARAM_CODE and "budget" in lowered:
        return TranslatedError(
            "Budget settings are invalid. Check that the daily/lifetime budget "
            "meets Meta's minimum requirements.",
            str(code),
            "budget",
            False,
        )
    if code == INVALID_PARAM_CODE and ("targeting" in lowered or "audience" in lowered):
        return TranslatedError(
            "Targeting settings are too narrow or invalid. Adjust location, "
            "age or interest targeting.",
            str(code),
            "targeting",
            False,
        )
    if code in PERMISSION_CODES:
        return TranslatedError(
            "Access token expired or insufficient permissions. Please reconnect "
            "your Meta account.",
            str(code),
            "permissions",
            False,
        )
    if code == ACCOUNT_RESTRICTED_CODE:
        return TranslatedError(
            "Your ad account has spending restrictions. Check the ad account settings.",
            str(code),
            "account",
            False,
        )
    if any(word in lowered for word in ("image", "video", "media")):
        return TranslatedError(
            "Media upload failed. Check file size, format and dimensions.",
            str(code),
            "media",
            False,
        )
    if code == POLICY_CODE or "policy" in lowered or "prohibited" in lowered:
        return TranslatedError(
            "The ad content violates Meta's advertising policies.",
            str(code),
            "policy",
            False,
        )
    if "pixel" in lowered or "conversion" in lowered:
        return TranslatedError(
            "Pixel or conversion tracking setup is invalid.",
            str(code),
            "pixel",
            False,
        )
    if "placement" in lowered:
        return TranslatedError(
            "Invalid ad placement settings.",
            str(code),
            "placement",
            False,
        )
    if code == INVALID_PARAM_CODE:
        return TranslatedError(
            f"Invalid campaign settings: {simplify_message(message)}",
            str(code),
            "invalid_param",
            False,
        )
    if "timed out" in lowered or "timeout" in lowered or "connection failed" in lowered:
        return TranslatedError(
            "Connection to Meta timed out. You can retry this item.",
            "TIMEOUT",
            "network",
            True,
        )
    if status_code >= 500:
        return TranslatedError(
            "Meta returned a temporary server error. You can retry this item.",
            str(status_code),
            "server",
            True,
        )

    return TranslatedError(
        f"Meta API Error: {simplify_message(message)}",
        str(code) if code else "UNKNOWN",
        "unknown",
        True,
    )
