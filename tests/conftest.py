"""
Pytest configuration and shared fixtures for the test suite.
"""

import logging

import pytest


ANDROID_PAGE_SOURCE = """<?xml version="1.0" encoding="UTF-8"?>
<hierarchy rotation="0">
  <android.widget.FrameLayout class="android.widget.FrameLayout" enabled="true" displayed="true">
    <android.widget.LinearLayout class="android.widget.LinearLayout" resource-id="com.app:id/login_form" enabled="true" displayed="true">
      <android.widget.TextView class="android.widget.TextView" resource-id="com.app:id/email_label" text="Email address" enabled="true" displayed="true"/>
      <android.widget.EditText class="android.widget.EditText" resource-id="com.app:id/email_input" text="" content-desc="Email input" enabled="true" displayed="true"/>
      <android.widget.Button class="android.widget.Button" resource-id="com.app:id/login_button_v2" content-desc="Login" text="Sign in" enabled="true" displayed="true"/>
      <android.widget.Button class="android.widget.Button" resource-id="com.app:id/hidden_button" text="Hidden" enabled="false" displayed="true"/>
    </android.widget.LinearLayout>
  </android.widget.FrameLayout>
</hierarchy>
"""

IOS_PAGE_SOURCE = """<?xml version="1.0" encoding="UTF-8"?>
<XCUIElementTypeApplication type="XCUIElementTypeApplication" name="Demo" label="Demo" enabled="true" visible="true">
  <XCUIElementTypeWindow type="XCUIElementTypeWindow" enabled="true" visible="true">
    <XCUIElementTypeStaticText type="XCUIElementTypeStaticText" name="welcome_title" label="Welcome back" value="Welcome back" enabled="true" visible="true"/>
    <XCUIElementTypeButton type="XCUIElementTypeButton" name="submit_button" label="Submit" enabled="true" visible="true"/>
    <XCUIElementTypeButton type="XCUIElementTypeButton" name="ghost_button" label="Ghost" enabled="true" visible="false"/>
  </XCUIElementTypeWindow>
</XCUIElementTypeApplication>
"""

HTML_PAGE_SOURCE = """<!DOCTYPE html>
<html>
  <body>
    <form id="login">
      <label for="email">Email</label>
      <input id="email" name="email" class="form-control big"/>
      <button id="submit-btn" class="btn btn-primary">Login</button>
    </form>
  </body>
</html>
"""


class FakeClock:
    """Manually advanced time source for TTL and budget tests."""

    def __init__(self, start: float = 1000.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def android_page_source():
    return ANDROID_PAGE_SOURCE


@pytest.fixture
def ios_page_source():
    return IOS_PAGE_SOURCE


@pytest.fixture
def html_page_source():
    return HTML_PAGE_SOURCE


@pytest.fixture
def fake_clock():
    """Clock that only moves when the test advances it."""
    return FakeClock()


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@pytest.fixture
def clock_factory():
    """Build FakeClocks with a custom start or automatic step."""
    return FakeClock
