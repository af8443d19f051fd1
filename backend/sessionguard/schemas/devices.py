"""Schemas describing devices, locations and active sessions."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class DeviceClass(str, Enum):
    DESKTOP = "Desktop"
    PHONE = "Phone"
    TABLET = "Tablet"
    UNKNOWN = "Unknown"


class DeviceFingerprint(BaseModel):
    """Client and network attributes captured when credentials are issued.

    Attributes:
        ip_address: Client IP address.
        user_agent: Raw user-agent header.
        browser / browser_version: Parsed browser family and version.
        platform / platform_version: Parsed operating system and version.
        is_desktop / is_phone / is_tablet: Parsed form factor flags.
    """

    ip_address: str
    user_agent: str | None = None
    browser: str | None = None
    browser_version: str | None = None
    platform: str | None = None
    platform_version: str | None = None
    is_desktop: bool = False
    is_phone: bool = False
    is_tablet: bool = False

    @property
    def device_class(self) -> DeviceClass:
        if self.is_desktop:
            return DeviceClass.DESKTOP
        if self.is_phone:
            return DeviceClass.PHONE
        if self.is_tablet:
            return DeviceClass.TABLET
        return DeviceClass.UNKNOWN


class GeoLocation(BaseModel):
    """Coarse location resolved from an IP address."""

    country_code: str
    location: str | None = None


class SessionSummary(BaseModel):
    """An active device session as listed to its owner."""

    id: int
    name: str
    ip_address: str | None = None
    browser: str | None = None
    platform: str | None = None
    device: DeviceClass | None = None
    location: str | None = None
    country_code: str | None = None
    created_at: datetime
    last_used_at: datetime | None = None
    is_suspicious: bool = False

    class Config:
        from_attributes = True


class DeviceListResponse(BaseModel):
    """Sessions of the current user plus the id of the calling session."""

    devices: list[SessionSummary]
    current_device_id: int
