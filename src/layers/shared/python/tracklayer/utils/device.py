"""User-agent sniffing for the event ``device`` block."""

from tracklayer.models.events import DeviceInfo

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def hash_string(value: str) -> str:
    """32-bit rolling string hash rendered in base 36.

    Matches the hash the client-side snippet produces, so ``ua_hash`` values
    from both sides can be joined.
    """
    hash_value = 0
    if not value:
        return "0"

    for char in value:
        hash_value = ((hash_value << 5) - hash_value + ord(char)) & 0xFFFFFFFF

    # Reinterpret as signed 32-bit, then take the magnitude
    if hash_value & 0x80000000:
        hash_value -= 0x100000000
    hash_value = abs(hash_value)

    if hash_value == 0:
        return "0"
    digits = []
    while hash_value:
        hash_value, remainder = divmod(hash_value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def get_operating_system(user_agent: str) -> str:
    if "Windows" in user_agent:
        return "Windows"
    if "Mac OS" in user_agent:
        return "macOS"
    if "Android" in user_agent:
        return "Android"
    if "Linux" in user_agent:
        return "Linux"
    if "iPhone" in user_agent or "iPad" in user_agent or "iOS" in user_agent:
        return "iOS"
    return "unknown"


def get_browser(user_agent: str) -> str:
    if "Edg" in user_agent:
        return "Edge"
    if "OPR" in user_agent or "Opera" in user_agent:
        return "Opera"
    if "Chrome" in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent:
        return "Safari"
    return "unknown"


def get_device_info(user_agent: str | None) -> DeviceInfo:
    """Build the device block for a user agent string."""
    if not user_agent:
        return DeviceInfo(ua_hash="", os="unknown", browser="unknown")

    return DeviceInfo(
        ua_hash=hash_string(user_agent),
        os=get_operating_system(user_agent),
        browser=get_browser(user_agent),
    )
