"""HTML to PDF conversion through a headless Chromium.

Every attempt launches its own browser inside :class:`ChromiumEngine`, which
closes the browser and stops playwright however the attempt ends. Only
:class:`DocumentNotReady` failures are retried, with a fixed delay between
attempts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

from invoicing.services.exceptions import DocumentNotReady, RenderingFailedError

logger = logging.getLogger(__name__)

PAGE_FORMAT = "A4"
PAGE_MARGINS: Dict[str, str] = {
    "top": "20mm",
    "bottom": "20mm",
    "left": "15mm",
    "right": "15mm",
}

PageLoader = Callable[[Page], Awaitable[None]]
MarkupSource = Callable[[], Awaitable[str]]


class DocumentRejected(Exception):
    """The document source answered with an error that retrying will not fix."""


class ChromiumEngine:
    """Async context manager owning one headless Chromium process."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout_ms = timeout * 1000
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "ChromiumEngine":
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=True)
        except BaseException:
            await self._playwright.stop()
            self._playwright = None
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def print_pdf(self, load: PageLoader) -> bytes:
        if self._browser is None:
            raise RuntimeError("Rendering engine used outside of its context")
        page = await self._browser.new_page()
        page.set_default_timeout(self._timeout_ms)
        await load(page)
        return await page.pdf(
            format=PAGE_FORMAT,
            margin=PAGE_MARGINS,
            print_background=True,
        )


EngineFactory = Callable[[], Any]


class PdfRenderer:
    def __init__(
        self,
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        engine_factory: EngineFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._engine_factory = engine_factory or (lambda: ChromiumEngine(timeout=timeout))
        self._sleep = sleep

    async def render_markup(self, source: MarkupSource) -> bytes:
        """Render the markup produced by ``source``, asking it again on every attempt."""

        async def load(page: Page) -> None:
            markup = await source()
            await page.set_content(markup, wait_until="networkidle")

        return await self._render(load)

    async def render_url(self, url: str) -> bytes:
        """Render the document served at ``url``; a 404 counts as not ready."""

        async def load(page: Page) -> None:
            response = await page.goto(url, wait_until="networkidle")
            if response is None:
                return
            if response.status == 404:
                raise DocumentNotReady(f"Document at {url} is not available yet")
            if response.status >= 400:
                raise DocumentRejected(f"Document at {url} returned HTTP {response.status}")

        return await self._render(load)

    async def _render(self, load: PageLoader) -> bytes:
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._engine_factory() as engine:
                    pdf = await engine.print_pdf(load)
            except DocumentNotReady as exc:
                last_error = exc
                logger.warning(
                    "Document not ready (attempt %s/%s): %s",
                    attempt,
                    self._max_attempts,
                    exc,
                )
                if attempt < self._max_attempts:
                    await self._sleep(self._retry_delay)
                continue
            except DocumentRejected as exc:
                raise RenderingFailedError(str(exc), attempts=attempt, cause=exc) from exc
            except Exception as exc:
                logger.exception("PDF rendering failed on attempt %s", attempt)
                raise RenderingFailedError(
                    "Failed to generate PDF", attempts=attempt, cause=exc
                ) from exc

            if not pdf or not pdf.startswith(b"%PDF"):
                raise RenderingFailedError(
                    "Rendering engine returned an invalid PDF", attempts=attempt
                )
            logger.info("Rendered PDF (%s bytes) on attempt %s", len(pdf), attempt)
            return pdf

        raise RenderingFailedError(
            f"Document still unavailable after {self._max_attempts} attempts",
            attempts=self._max_attempts,
            cause=last_error,
        ) from last_error
