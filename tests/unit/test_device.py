"""
Unit tests for user agent parsing.
"""
from tollgate.utils.device import parse_device

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
FIREFOX_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0"


class TestParseDevice:
    """Test cases for parse_device."""

    def test_desktop_browser(self):
        info = parse_device(CHROME_WINDOWS)
        assert info["browser"] == "Chrome"
        assert info["browser_version"].startswith("120")
        assert info["os"] == "Windows"
        assert info["device_type"] == "desktop"

    def test_phone(self):
        info = parse_device(SAFARI_IPHONE)
        assert info["device_type"] == "mobile"
        assert info["os"] == "iOS"
        assert info["device_name"] == "iPhone"

    def test_tablet(self):
        assert parse_device(SAFARI_IPAD)["device_type"] == "tablet"

    def test_firefox_on_mac(self):
        info = parse_device(FIREFOX_MAC)
        assert info["browser"] == "Firefox"
        assert info["device_type"] == "desktop"

    def test_missing_header(self):
        assert parse_device(None) is None
        assert parse_device("") is None
