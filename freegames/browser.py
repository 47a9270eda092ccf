from playwright.async_api import BrowserContext, Playwright

from .config import Settings

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/99.0.4844.83 Safari/537.36"
)

# Reduce headless fingerprint; without it Epic shows an hcaptcha on login and checkout.
STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
    window.chrome = { runtime: {} };
    Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
    Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
"""


async def launch_context(playwright: Playwright, settings: Settings) -> BrowserContext:
    # Persistent profile keeps the login cookies between runs.
    context = await playwright.chromium.launch_persistent_context(
        settings.browser_dir,
        headless=settings.headless,
        viewport={"width": settings.screen_width, "height": settings.screen_height},
        user_agent=USER_AGENT,
        locale="en-US",  # locators match English text
        args=["--hide-crash-restore-bubble"],
        ignore_default_args=["--enable-automation"],
    )
    await context.add_init_script(STEALTH_SCRIPT)
    context.set_default_timeout(settings.operation_timeout)
    return context
