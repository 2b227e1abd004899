"""Renderer boundary: turn a URL into a local PDF file."""

import logging
import os
import tempfile
import uuid
from typing import Any, Dict, Optional, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .errors import RenderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120000  # milliseconds
DEFAULT_FORMAT = "A4"


class Renderer(Protocol):
    """Anything that can render ``url`` to a local PDF and return its path."""

    def render(self, url: str, options: Dict[str, Any]) -> str:
        ...


class ChromeRenderer:
    """Renders PDFs with headless Chromium driven by Playwright.

    Each call starts its own browser, so one renderer can be shared by the
    batch runner's worker threads.
    """

    def __init__(self, headless: bool = True, output_dir: Optional[str] = None):
        self.headless = headless
        self.output_dir = output_dir or tempfile.gettempdir()

    def render(self, url: str, options: Optional[Dict[str, Any]] = None) -> str:
        options = options or {}
        timeout = options.get("timeout", DEFAULT_TIMEOUT)
        output_path = os.path.join(self.output_dir, f"{uuid.uuid4().hex}.pdf")
        logger.debug("Rendering %s to %s", url, output_path)

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self.headless)
                try:
                    page = browser.new_page()
                    page.goto(url, timeout=timeout, wait_until=options.get("wait_until", "networkidle"))
                    page.pdf(
                        path=output_path,
                        format=options.get("format", DEFAULT_FORMAT),
                        print_background=options.get("print_background", True),
                    )
                finally:
                    browser.close()
        except PlaywrightTimeoutError as e:
            raise RenderError(f"Rendering {url} timed out after {timeout} ms") from e
        except PlaywrightError as e:
            raise RenderError(f"Rendering {url} failed: {e.message}") from e

        if not os.path.exists(output_path):
            raise RenderError(f"Renderer produced no PDF for {url}")
        return output_path
