"""Device emulation profiles for audits.

Every page is audited twice, as ``desktop`` and as ``mobile``. Desktop has an
escalated variant (bigger viewport, newer user agent) used when the standard
attempt is refused by the site or times out.
"""

from dataclasses import dataclass
from typing import Literal

DeviceName = Literal["desktop", "mobile"]

AUDIT_DEVICES: tuple[DeviceName, ...] = ("desktop", "mobile")


@dataclass(frozen=True)
class DeviceProfile:
    """Device emulation profile for one audit attempt."""

    name: DeviceName
    width: int
    height: int
    device_scale_factor: float
    is_mobile: bool
    has_touch: bool
    user_agent: str

    @property
    def viewport(self) -> dict[str, int]:
        """Get viewport dict for Playwright."""
        return {"width": self.width, "height": self.height}

    @property
    def form_factor(self) -> str:
        return "mobile" if self.is_mobile else "desktop"

    def context_options(self) -> dict[str, object]:
        """Keyword arguments for ``Browser.new_context``."""
        return {
            "viewport": self.viewport,
            "user_agent": self.user_agent,
            "device_scale_factor": self.device_scale_factor,
            "is_mobile": self.is_mobile,
            "has_touch": self.has_touch,
        }

    def lighthouse_flags(self) -> list[str]:
        """Lighthouse CLI emulation flags for this form factor."""
        if self.is_mobile:
            return ["--form-factor=mobile", "--screenEmulation.mobile=true"]
        return [
            "--form-factor=desktop",
            "--screenEmulation.mobile=false",
            "--screenEmulation.width=1920",
            "--screenEmulation.height=1080",
            "--screenEmulation.deviceScaleFactor=1",
            "--screenEmulation.disabled=false",
        ]


_UA_DESKTOP = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/115.0.0.0 Safari/537.36"
)
_UA_DESKTOP_ADVANCED = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36"
)
_UA_PIXEL_5 = (
    "Mozilla/5.0 (Linux; Android 11; Pixel 5) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/90.0.4430.91 Mobile Safari/537.36"
)

DESKTOP = DeviceProfile(
    name="desktop",
    width=1280,
    height=800,
    device_scale_factor=1,
    is_mobile=False,
    has_touch=False,
    user_agent=_UA_DESKTOP,
)

DESKTOP_ADVANCED = DeviceProfile(
    name="desktop",
    width=1920,
    height=1080,
    device_scale_factor=1,
    is_mobile=False,
    has_touch=False,
    user_agent=_UA_DESKTOP_ADVANCED,
)

# Pixel 5, as described by Puppeteer's and Playwright's device lists
MOBILE = DeviceProfile(
    name="mobile",
    width=393,
    height=851,
    device_scale_factor=2.75,
    is_mobile=True,
    has_touch=True,
    user_agent=_UA_PIXEL_5,
)


def get_device(name: str, advanced: bool = False) -> DeviceProfile | None:
    """Get the profile for ``desktop`` or ``mobile`` (case-insensitive)."""
    key = name.strip().lower()
    if key == "desktop":
        return DESKTOP_ADVANCED if advanced else DESKTOP
    if key == "mobile":
        return MOBILE
    return None
