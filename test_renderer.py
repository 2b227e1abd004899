"""Tests for the Playwright renderer."""

import os

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from pdfbot import renderer as renderer_module
from pdfbot.errors import RenderError
from pdfbot.renderer import ChromeRenderer


class FakePage:
    def __init__(self, error=None):
        self.error = error
        self.visited = []
        self.pdf_options = None

    def goto(self, url, timeout=None, wait_until=None):
        self.visited.append((url, timeout, wait_until))
        if self.error:
            raise self.error

    def pdf(self, path, **options):
        self.pdf_options = options
        with open(path, "wb") as f:
            f.write(b"%PDF-1.4")


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    def new_page(self):
        return self.page

    def close(self):
        self.closed = True


class FakePlaywright:
    def __init__(self, browser):
        self.browser = browser
        self.chromium = self
        self.launched_headless = None

    def launch(self, headless=True):
        self.launched_headless = headless
        return self.browser

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture()
def fake_playwright(monkeypatch):
    def install(page):
        playwright = FakePlaywright(FakeBrowser(page))
        monkeypatch.setattr(renderer_module, "sync_playwright", lambda: playwright)
        return playwright

    return install


def test_renders_pdf(tmp_path, fake_playwright):
    page = FakePage()
    playwright = fake_playwright(page)

    path = ChromeRenderer(output_dir=str(tmp_path)).render(
        "https://example.com", {"timeout": 5000, "format": "Letter"}
    )

    assert os.path.dirname(path) == str(tmp_path)
    assert open(path, "rb").read() == b"%PDF-1.4"
    assert page.visited == [("https://example.com", 5000, "networkidle")]
    assert page.pdf_options == {"format": "Letter", "print_background": True}
    assert playwright.launched_headless is True
    assert playwright.browser.closed


def test_timeout_becomes_render_error(tmp_path, fake_playwright):
    playwright = fake_playwright(FakePage(error=PlaywrightTimeoutError("Timeout 5000ms exceeded")))

    with pytest.raises(RenderError, match="timed out"):
        ChromeRenderer(output_dir=str(tmp_path)).render("https://example.com", {"timeout": 5000})

    assert playwright.browser.closed


def test_navigation_error_becomes_render_error(tmp_path, fake_playwright):
    fake_playwright(FakePage(error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED")))

    with pytest.raises(RenderError, match="ERR_NAME_NOT_RESOLVED"):
        ChromeRenderer(output_dir=str(tmp_path)).render("https://nope.invalid", {})
