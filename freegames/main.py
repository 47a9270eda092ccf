import asyncio
import logging
import os
from typing import List, Optional, Tuple

from playwright.async_api import async_playwright

from .browser import launch_context
from .claim import ClaimStateMachine
from .config import URL_CLAIM, Settings
from .discovery import list_free_items
from .ledger import ClaimLedger
from .models import item_id_from_url
from .notifier import TelegramClient, build_summary
from .screenshots import ScreenshotStore
from .session import ensure_signed_in
from .waits import fire_and_forget

ACCEPT_COOKIES = 'button:has-text("Accept All Cookies")'


async def run_claims(
    page, ledger: ClaimLedger, machine: ClaimStateMachine, settings: Settings
) -> Tuple[Optional[str], List[str], bool]:
    """Sign in, discover and claim every free game; the ledger is written whatever happens.

    Returns the account, the discovered urls and whether the run finished.
    """
    account: Optional[str] = None
    urls: List[str] = []
    try:
        await page.goto(URL_CLAIM, wait_until="domcontentloaded")
        # The banner only shows on a fresh profile, so don't wait for it.
        fire_and_forget(page.click(ACCEPT_COOKIES))

        account = await ensure_signed_in(page, settings)
        ledger.records_for(account)

        urls = await list_free_items(page, settings)
        for url in urls:
            await machine.claim(page, account, url)
        return account, urls, True
    except Exception:
        logging.exception("Run aborted")
        return account, urls, False
    finally:
        ledger.flush()


def notify(account: Optional[str], urls: List[str], ledger: ClaimLedger) -> None:
    if not account or not urls:
        return
    records = [r for r in (ledger.get(account, item_id_from_url(u)) for u in urls) if r is not None]
    text = build_summary(account, records)
    try:
        TelegramClient().send_message(text)
    except Exception as e:
        logging.error("Sending summary failed: %s", e)


async def run(settings: Settings) -> int:
    ledger = ClaimLedger(settings.ledger_path)
    ledger.load()
    machine = ClaimStateMachine(ledger, ScreenshotStore(settings.screenshot_dir), settings)

    async with async_playwright() as p:
        context = await launch_context(p, settings)
        page = context.pages[0] if context.pages else await context.new_page()
        try:
            account, urls, finished = await run_claims(page, ledger, machine, settings)
        finally:
            await context.close()

    notify(account, urls, ledger)
    return 0 if finished else 1


def main() -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    settings = Settings.from_env()
    if settings.dry_run:
        logging.info("DRYRUN is set, no orders will be placed.")
    return asyncio.run(run(settings))


if __name__ == "__main__":
    raise SystemExit(main())
