"""Interactive browser login via Playwright.

Opens the portal in a visible Chromium window, waits for the user to finish
the (Google) sign-in, and harvests the cookies of the resulting session. The
rest of the bridge only sees the ExtractedCookies this produces.
"""

import asyncio
import time
from urllib.parse import unquote

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.nlobby.config import BridgeConfig, get_config
from src.nlobby.errors import AuthenticationError, TransientError
from src.nlobby.logging import get_logger
from src.nlobby.models import ExtractedCookies
from src.nlobby.session import (
    CALLBACK_URL_COOKIES,
    CSRF_TOKEN_COOKIES,
    SESSION_TOKEN_COOKIES,
)

NAVIGATION_TIMEOUT_MS = 30000
COOKIE_POLL_INTERVAL = 1.0


def cookies_from_browser(cookies: list[dict]) -> ExtractedCookies:
    """Build the cookie blob and named tokens from Playwright cookies."""
    by_name = {c["name"]: c["value"] for c in cookies if c.get("name")}

    def first(names: tuple[str, ...]) -> str | None:
        return next((by_name[n] for n in names if by_name.get(n)), None)

    callback = first(CALLBACK_URL_COOKIES)
    return ExtractedCookies(
        session_token=first(SESSION_TOKEN_COOKIES),
        csrf_token=first(CSRF_TOKEN_COOKIES),
        callback_url=unquote(callback) if callback else None,
        all_cookies="; ".join(f"{name}={value}" for name, value in by_name.items()),
    )


class BrowserLogin:
    """Drives the interactive login and returns the session cookies.

    Args:
        config: Bridge configuration (defaults to the singleton).
        logger: Optional structlog logger.
    """

    def __init__(self, config: BridgeConfig | None = None, logger=None) -> None:
        self.config = config or get_config()
        self.log = logger or get_logger(__name__)

    async def _wait_for_session_cookie(self, context, page) -> None:
        """Poll the context's cookies until a session token shows up.

        Raises:
            TransientError: If the attempt's share of the login budget runs out.
        """
        budget = self.config.login_timeout / max(self.config.login_attempts, 1)
        deadline = time.monotonic() + budget
        while time.monotonic() < deadline:
            cookies = await context.cookies(self.config.base_url)
            if any(c.get("name") in SESSION_TOKEN_COOKIES for c in cookies):
                self.log.info("login_detected", url=page.url)
                return
            await asyncio.sleep(COOKIE_POLL_INTERVAL)

        self.log.warning("login_wait_timeout", budget_seconds=budget, url=page.url)
        try:
            # Bring the window back to the portal for the next attempt
            await page.goto(
                self.config.base_url,
                wait_until="domcontentloaded",
                timeout=NAVIGATION_TIMEOUT_MS,
            )
        except PlaywrightError as e:
            self.log.warning("login_renavigation_failed", error=str(e))
        raise TransientError("Login was not completed in time")

    async def interactive_login(self) -> ExtractedCookies:
        """Open the portal and wait for the user to sign in.

        Returns:
            ExtractedCookies with the full cookie blob.

        Raises:
            AuthenticationError: If no session appeared within the attempt
                budget or the browser could not be driven.
        """
        self.log.info(
            "interactive_login_started",
            url=self.config.base_url,
            attempts=self.config.login_attempts,
        )
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=self.config.browser_headless)
            try:
                context = await browser.new_context(
                    user_agent=self.config.effective_user_agent,
                    locale="ja-JP",
                )
                page = await context.new_page()
                await page.goto(
                    self.config.base_url,
                    wait_until="domcontentloaded",
                    timeout=NAVIGATION_TIMEOUT_MS,
                )

                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.config.login_attempts),
                    wait=wait_fixed(self.config.login_backoff),
                    retry=retry_if_exception_type(TransientError),
                ):
                    with attempt:
                        await self._wait_for_session_cookie(context, page)

                extracted = cookies_from_browser(await context.cookies(self.config.base_url))
            except RetryError as e:
                self.log.error("interactive_login_failed", reason="timeout")
                raise AuthenticationError(
                    f"Login not detected after {self.config.login_attempts} attempts"
                ) from e
            except PlaywrightError as e:
                self.log.error("interactive_login_failed", error=str(e))
                raise AuthenticationError(f"Browser login failed: {e}") from e
            finally:
                await browser.close()

        self.log.info(
            "interactive_login_succeeded",
            cookies=len(extracted.all_cookies),
            csrf_token=extracted.csrf_token is not None,
        )
        return extracted
