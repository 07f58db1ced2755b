def describe_device(user_agent: str) -> str:
    """Coarse, human-readable device label for session listings."""
    if not user_agent:
        return "Unknown Device"

    if "Mobile" in user_agent:
        if "iPhone" in user_agent:
            return "iPhone"
        if "Android" in user_agent:
            return "Android Phone"
        return "Mobile Device"

    if "Tablet" in user_agent or "iPad" in user_agent:
        return "Tablet"

    if "Windows" in user_agent:
        return "Windows PC"
    if "Mac" in user_agent:
        return "Mac"
    if "Linux" in user_agent:
        return "Linux PC"

    return "Desktop"
