"""User agent parsing for sessions and login history."""
from typing import Dict, Optional

import user_agents


def parse_device(user_agent: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
    """Browser, OS and device type parsed from a User-Agent header.

    Returns None when there is no header to parse.
    """
    if not user_agent:
        return None

    ua = user_agents.parse(user_agent)
    if ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    elif ua.is_bot:
        device_type = "bot"
    else:
        device_type = "desktop"

    device_name = ua.device.family
    return {
        "browser": ua.browser.family,
        "browser_version": ua.browser.version_string or None,
        "os": ua.os.family,
        "os_version": ua.os.version_string or None,
        "device_type": device_type,
        "device_name": device_name if device_name and device_name != "Other" else None,
    }
