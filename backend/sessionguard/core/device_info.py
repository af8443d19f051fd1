"""Request helpers that capture the caller's device fingerprint."""

from fastapi import Request
from schemas.devices import DeviceFingerprint
from user_agents import parse as parse_user_agent


def get_client_ip(request: Request) -> str:
    """Determine the client's IP address from the request.

    Prefers the `X-Forwarded-For` header when present (typical when
    the app is behind a proxy/load-balancer), otherwise falls back to the
    direct client address exposed by the ASGI server.

    Returns:
        str: Client IP address or "Unknown" if it cannot be determined.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "Unknown"


def fingerprint_from_user_agent(ip_address: str, user_agent: str) -> DeviceFingerprint:
    """Parse a user-agent header into a `DeviceFingerprint`."""
    agent = parse_user_agent(user_agent)
    return DeviceFingerprint(
        ip_address=ip_address,
        user_agent=user_agent[:255],
        browser=agent.browser.family,
        browser_version=agent.browser.version_string or None,
        platform=agent.os.family,
        platform_version=agent.os.version_string or None,
        is_desktop=agent.is_pc,
        is_phone=agent.is_mobile and not agent.is_tablet,
        is_tablet=agent.is_tablet,
    )


def get_device_fingerprint(request: Request) -> DeviceFingerprint | None:
    """FastAPI dependency returning the caller's fingerprint.

    Requests without a user-agent header carry no fingerprint.
    """
    user_agent = request.headers.get("user-agent")
    if not user_agent:
        return None
    return fingerprint_from_user_agent(get_client_ip(request), user_agent)
