import asyncio
import itertools
import os

from fakes import FakePage, game_screen

from freegames import claim
from freegames.claim import ClaimStateMachine
from freegames.config import Settings
from freegames.ledger import ClaimLedger
from freegames.models import ClaimStatus, ItemRecord
from freegames.screenshots import ScreenshotStore

URL = "https://store.epicgames.com/en-US/p/celeste"


class Harness:
    def __init__(self, tmp_path, **settings):
        self.settings = Settings(data_dir=str(tmp_path), **settings)
        self.ledger = ClaimLedger(self.settings.ledger_path)
        self.ledger.load()
        self.screenshots = ScreenshotStore(self.settings.screenshot_dir)
        ticks = itertools.count(1)
        self.machine = ClaimStateMachine(self.ledger, self.screenshots, self.settings,
                                         clock=lambda: f"2023-01-05 17:00:0{next(ticks)}.000")

    def run(self, screen):
        page = FakePage({URL: screen})
        asyncio.run(self.machine.claim(page, "tester", URL))
        return page

    @property
    def record(self) -> ItemRecord:
        return self.ledger.get("tester", "celeste")

    def captchas(self):
        folder = os.path.join(self.settings.screenshot_dir, "epic-games", "captcha")
        return os.listdir(folder) if os.path.isdir(folder) else []


def test_fresh_claim_without_consent_dialog(tmp_path):
    h = Harness(tmp_path)
    page = h.run(game_screen())

    assert h.record.to_dict() == {
        "title": "Celeste",
        "time": "2023-01-05 17:00:02.000",
        "url": URL,
        "status": "claimed",
    }
    assert claim.AGREE_BUTTON not in page.clicks
    assert page.clicks == [claim.PURCHASE_BUTTON, claim.PLACE_ORDER_BUTTON]
    assert h.screenshots.exists(None, "celeste")
    assert h.captchas() == []


def test_consent_dialog_is_accepted_before_confirmation(tmp_path):
    h = Harness(tmp_path)
    page = h.run(game_screen(consent=True))

    assert h.record.status is ClaimStatus.CLAIMED
    assert page.clicks == [claim.PURCHASE_BUTTON, claim.PLACE_ORDER_BUTTON, claim.AGREE_BUTTON]


def test_notice_after_get_is_continued(tmp_path):
    h = Harness(tmp_path)
    page = h.run(game_screen(notice=True))

    assert h.record.status is ClaimStatus.CLAIMED
    assert page.clicks[:2] == [claim.PURCHASE_BUTTON, claim.CONTINUE_BUTTON]


def test_age_gate_dismissed_on_load(tmp_path):
    h = Harness(tmp_path)
    page = h.run(game_screen(age_gate=True, owned=True))

    assert page.clicks == [claim.CONTINUE_BUTTON]
    assert h.record.status is ClaimStatus.EXISTED


def test_captcha_marks_failed_and_saves_screenshot(tmp_path, caplog):
    h = Harness(tmp_path)
    page = h.run(game_screen(checkout=False))

    assert h.record.status is ClaimStatus.FAILED
    assert h.record.time == "2023-01-05 17:00:01.000"
    assert h.captchas() == ["2023-01-05 17_00_02.000.png"]
    assert page.screenshots == 2  # captcha + baseline
    assert "Got hcaptcha challenge" in caplog.text


def test_failed_screenshot_does_not_break_claim(tmp_path):
    h = Harness(tmp_path)
    page = FakePage({URL: game_screen(checkout=False)})
    page.fail_screenshots = True
    asyncio.run(h.machine.claim(page, "tester", URL))

    assert h.record.status is ClaimStatus.FAILED
    assert h.captchas() == []


def test_owned_twice_is_one_existed_record(tmp_path):
    h = Harness(tmp_path)
    h.run(game_screen(owned=True))
    first = h.record.to_dict()
    page = h.run(game_screen(owned=True))

    assert h.record.to_dict() == first
    assert first["status"] == "existed"
    assert list(h.ledger.records_for("tester")) == ["celeste"]
    assert page.clicks == []


def test_fields_unchanged_on_second_run(tmp_path):
    h = Harness(tmp_path)
    h.run(game_screen())
    first = h.record.to_dict()
    h.run(game_screen(owned=True, title="Celeste: Farewell"))

    assert h.record.to_dict() == first


def test_previously_failed_now_owned_is_manual(tmp_path):
    h = Harness(tmp_path)
    old = h.ledger.ensure("tester", "celeste", title="Celeste", url=URL, time="2023-01-01 17:00:00.000")
    old.mark_failed()
    h.run(game_screen(owned=True))

    assert h.record.status is ClaimStatus.MANUAL
    assert h.record.time == "2023-01-01 17:00:00.000"


def test_previously_failed_retried_and_claimed(tmp_path):
    h = Harness(tmp_path)
    old = h.ledger.ensure("tester", "celeste", title="Celeste", url=URL, time="2023-01-01 17:00:00.000")
    old.mark_failed()
    h.run(game_screen())

    assert h.record.status is ClaimStatus.CLAIMED
    assert h.record.time == "2023-01-05 17:00:02.000"


def test_claimed_record_survives_a_failed_retry(tmp_path):
    h = Harness(tmp_path)
    h.run(game_screen())
    page = h.run(game_screen(checkout=False))

    assert claim.PLACE_ORDER_BUTTON in page.clicks
    assert h.record.status is ClaimStatus.CLAIMED


def test_dry_run_never_sets_status(tmp_path):
    h = Harness(tmp_path, dry_run=True)
    page = h.run(game_screen())

    assert h.record.status is None
    assert claim.PLACE_ORDER_BUTTON not in page.clicks
    assert page.screenshots == 0


def test_dry_run_without_checkout_never_sets_status(tmp_path):
    h = Harness(tmp_path, dry_run=True)
    screen = game_screen()
    screen.on_click.pop(claim.PURCHASE_BUTTON)
    h.run(screen)

    assert h.record.status is None
    assert h.captchas() == []


def test_debug_pauses_before_order(tmp_path):
    h = Harness(tmp_path, debug=True)
    page = h.run(game_screen())

    assert page.paused
    assert h.record.status is ClaimStatus.CLAIMED


def _unclickable_get(**kwargs):
    screen = game_screen(**kwargs)
    screen.present.discard(claim.PURCHASE_BUTTON)
    return screen


def test_unclickable_get_marks_failed(tmp_path):
    h = Harness(tmp_path)
    page = h.run(_unclickable_get())

    assert h.record.status is ClaimStatus.FAILED
    assert len(h.captchas()) == 1
    assert page.clicks == []


def test_dry_run_unclickable_get_never_sets_status(tmp_path):
    h = Harness(tmp_path, dry_run=True)
    page = h.run(_unclickable_get())

    assert h.record.status is None
    assert page.screenshots == 0


def test_dry_run_owned_takes_no_screenshot(tmp_path):
    h = Harness(tmp_path, dry_run=True)
    page = h.run(game_screen(owned=True))

    assert h.record.status is ClaimStatus.EXISTED
    assert page.screenshots == 0
    assert not h.screenshots.exists(None, "celeste")
