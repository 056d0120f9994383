"""Tests for user-agent parsing."""

import re

import pytest

from tracklayer.utils.device import get_browser, get_device_info, get_operating_system, hash_string

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36 Edg/126.0.0.0"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:127.0) Gecko/20100101 Firefox/127.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.5 Mobile/15E148 Safari/604.1"
)
CHROME_ANDROID = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Mobile Safari/537.36"
)


class TestHashString:
    """Tests for hash_string."""

    def test_known_values(self):
        """Short inputs hash to known base-36 values."""
        assert hash_string("") == "0"
        assert hash_string("a") == "2p"
        assert hash_string("ab") == "2e9"

    def test_deterministic(self):
        """Equal inputs give equal hashes."""
        assert hash_string(CHROME_MAC) == hash_string(CHROME_MAC)
        assert hash_string(CHROME_MAC) != hash_string(EDGE_WINDOWS)

    def test_base36_output(self):
        """Long inputs stay within 32 bits and render in base 36."""
        value = hash_string(CHROME_MAC * 10)
        assert re.fullmatch(r"[0-9a-z]+", value)
        assert int(value, 36) <= 2**31


class TestDetection:
    """Tests for OS and browser detection."""

    @pytest.mark.parametrize(
        "user_agent,os_name,browser",
        [
            (CHROME_MAC, "macOS", "Chrome"),
            (EDGE_WINDOWS, "Windows", "Edge"),
            (FIREFOX_LINUX, "Linux", "Firefox"),
            (CHROME_ANDROID, "Android", "Chrome"),
            ("curl/8.0", "unknown", "unknown"),
        ],
    )
    def test_detection(self, user_agent, os_name, browser):
        """Known user agents map to their OS and browser."""
        assert get_operating_system(user_agent) == os_name
        assert get_browser(user_agent) == browser

    def test_iphone_reports_mac_os_first(self):
        """iPhone user agents contain 'Mac OS', which is checked first."""
        assert get_operating_system(SAFARI_IPHONE) == "macOS"
        assert get_browser(SAFARI_IPHONE) == "Safari"

    def test_device_info(self):
        """The device block combines hash, OS and browser."""
        info = get_device_info(CHROME_MAC)

        assert info.ua_hash == hash_string(CHROME_MAC)
        assert info.os == "macOS"
        assert info.browser == "Chrome"

    def test_empty_user_agent(self):
        """No user agent gives an empty hash and unknowns."""
        info = get_device_info(None)

        assert info.ua_hash == ""
        assert info.os == "unknown"
        assert info.browser == "unknown"
