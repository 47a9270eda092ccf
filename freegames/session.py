import logging

from bs4 import BeautifulSoup

from .config import URL_CLAIM, URL_LOGIN, Settings

SIGN_IN_BUTTON = 'a[role="button"]:has-text("Sign In")'
ACCOUNT_NAME = "#user span"


async def ensure_signed_in(page, settings: Settings) -> str:
    """Block until the page shows a signed-in account and return its display name.

    Epic's login page just reloads itself on a failed attempt, so the only
    completion signal is landing back on the free games page. That can take
    any amount of time with a human typing credentials or solving a captcha,
    hence no timeout while waiting. The sign-in button is checked again after
    every round.
    """
    while await page.locator(SIGN_IN_BUTTON).count() > 0:
        logging.error(
            "Not signed in anymore. Please login and then navigate to the 'Free Games' page. "
            "If using docker, open http://localhost:6080"
        )
        page.context.set_default_timeout(0)
        try:
            await page.goto(URL_LOGIN, wait_until="domcontentloaded")
            await page.wait_for_url(URL_CLAIM)
        finally:
            page.context.set_default_timeout(settings.operation_timeout)

    html = await page.locator(ACCOUNT_NAME).first.inner_html()
    account = BeautifulSoup(html, "html.parser").get_text().strip()
    logging.info("Signed in as %s", account)
    return account
