import logging
from typing import Callable

from .config import Settings
from .ledger import ClaimLedger
from .models import ItemRecord, item_id_from_url, timestamp
from .screenshots import ScreenshotStore
from .waits import await_first

# Text is "Loading" until the page knows whether the game is owned.
PURCHASE_BUTTON_READY = '//button[@data-testid="purchase-cta-button"][not(contains(.,"Loading"))]'
PURCHASE_BUTTON = '[data-testid="purchase-cta-button"]'
CONTINUE_BUTTON = 'button:has-text("Continue")'
PURCHASE_IFRAME = "#webPurchaseContainer iframe"
PLACE_ORDER_BUTTON = 'button:has-text("Place Order")'
AGREE_BUTTON = 'button:has-text("I Agree")'
CONFIRMATION = "text=Thank you for buying"
TITLE = "h1 div"

OWNED_TEXT = "in library"
MAX_GATE_DISMISSALS = 3
HCAPTCHA_HINT = "https://www.hcaptcha.com/accessibility"


class ClaimStateMachine:
    def __init__(
        self,
        ledger: ClaimLedger,
        screenshots: ScreenshotStore,
        settings: Settings,
        clock: Callable[[], str] = timestamp,
    ) -> None:
        self.ledger = ledger
        self.screenshots = screenshots
        self.settings = settings
        self.clock = clock

    async def claim(self, page, account: str, url: str) -> None:
        await page.goto(url, wait_until="domcontentloaded")
        button_text = await page.locator(PURCHASE_BUTTON_READY).first.inner_text()
        await self._dismiss_age_gate(page)

        title = (await page.locator(TITLE).first.inner_text()).strip()
        item_id = item_id_from_url(page.url)
        record = self.ledger.ensure(account, item_id, title=title, url=page.url, time=self.clock())
        logging.info("Current free game: %s (%s)", title, account)

        if button_text.strip().lower() == OWNED_TEXT:
            logging.info("  Already in library! Nothing to claim.")
            record.mark_owned()
        else:
            logging.info("  Not in library yet! Click GET.")
            if not await self._purchase(page, record):
                return
        if not self.settings.dry_run:
            await self._save_baseline(page, item_id)

    async def _dismiss_age_gate(self, page) -> None:
        for _ in range(MAX_GATE_DISMISSALS):
            if await page.locator(CONTINUE_BUTTON).count() == 0:
                return
            logging.info("  This game contains mature content recommended only for ages 18+")
            await page.click(CONTINUE_BUTTON)

    async def _purchase(self, page, record: ItemRecord) -> bool:
        """Run the checkout for ``record``; False when stopped early by dry-run."""
        try:
            await page.click(PURCHASE_BUTTON)
            # Either an age/device notice asking to Continue or straight to the checkout iframe.
            await await_first(
                [
                    lambda: page.wait_for_selector(CONTINUE_BUTTON),
                    lambda: page.wait_for_selector(PURCHASE_IFRAME),
                ],
                timeout=self.settings.wait_timeout,
            )
            if await page.locator(CONTINUE_BUTTON).count() > 0:
                logging.info("  Continue past notice before checkout")
                await page.click(CONTINUE_BUTTON)

            if self.settings.dry_run:
                logging.info("  DRYRUN: not placing order for %s", record.title)
                return False
            if self.settings.debug:
                await page.pause()

            iframe = page.frame_locator(PURCHASE_IFRAME)
            await iframe.locator(PLACE_ORDER_BUTTON).click()

            # The agree dialog is only shown to EU accounts.
            agree = iframe.locator(AGREE_BUTTON)
            branch = await await_first(
                [
                    lambda: agree.wait_for(),
                    lambda: page.wait_for_selector(CONFIRMATION),
                ],
                timeout=self.settings.wait_timeout,
            )
            if branch == 0:
                logging.info("  Accepting EU purchase terms")
                await agree.click()
            await page.wait_for_selector(CONFIRMATION)
        except Exception as e:
            if self.settings.dry_run:
                logging.warning("  DRYRUN: checkout did not open for %s: %s", record.title, e)
                return False
            logging.error("  Claim of %s failed: %s", record.title, e)
            await self._report_challenge(page, record)
            return True

        if record.mark_claimed(self.clock()):
            logging.info("  Claimed successfully!")
        return True

    async def _report_challenge(self, page, record: ItemRecord) -> None:
        record.mark_failed()
        try:
            image = await page.screenshot(full_page=True)
            path = self.screenshots.save("captcha", self.clock(), image)
            logging.info("  Saved a screenshot of hcaptcha challenge to %s", path)
        except Exception as e:
            logging.warning("  Could not save challenge screenshot: %s", e)
        logging.error("  Got hcaptcha challenge. To avoid it, get a link from %s", HCAPTCHA_HINT)

    async def _save_baseline(self, page, item_id: str) -> None:
        if self.screenshots.exists(None, item_id):
            return
        try:
            self.screenshots.save(None, item_id, await page.screenshot(full_page=False))
        except Exception as e:
            logging.warning("  Could not save screenshot of %s: %s", item_id, e)
