import json
import logging
import os
import shutil
from typing import Any, Dict, Optional

from .config import DEFAULT_DATA_DIR
from .models import ItemRecord, item_id_from_url

DEFAULT_LEDGER_PATH = os.path.join(DEFAULT_DATA_DIR, "epic-games.json")

# Top-level keys of the pre-account ledger: {"claimed": [...], "runs": [...]}
LEGACY_KEYS = ("claimed", "runs")


def is_legacy(data: Dict[str, Any]) -> bool:
    return isinstance(data.get("claimed"), list)


def migrate_legacy(legacy: Dict[str, Any], account: str) -> Dict[str, Dict[str, Any]]:
    """Turn the flat ``claimed`` list into the item mapping of ``account``.

    Pure: the input is not modified. Entries without a url are dropped since
    they cannot be keyed. ``runs`` carried nothing per item and is discarded.
    """
    del account  # the legacy file only ever held one account
    items: Dict[str, Dict[str, Any]] = {}
    for entry in legacy.get("claimed") or []:
        url = entry.get("url") if isinstance(entry, dict) else None
        if not url:
            continue
        items[item_id_from_url(url)] = dict(entry)
    return items


class ClaimLedger:
    def __init__(self, path: str = DEFAULT_LEDGER_PATH) -> None:
        self.path = path
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        self._accounts: Dict[str, Dict[str, ItemRecord]] = {}
        self._legacy: Dict[str, Any] = {}
        self._unknown: Dict[str, Any] = {}
        self._unknown_items: Dict[str, Dict[str, Any]] = {}

    def load(self) -> None:
        self._accounts = {}
        self._legacy = {}
        self._unknown = {}
        self._unknown_items = {}
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
        except Exception as e:
            backup = self.path + ".bak"
            logging.warning("Failed to load ledger %s: %s (copied to %s)", self.path, e, backup)
            shutil.copyfile(self.path, backup)
            return
        if is_legacy(data):
            self._legacy = {k: data.pop(k) for k in LEGACY_KEYS if k in data}
        for account, items in data.items():
            if not isinstance(items, dict):
                logging.warning("Keeping unrecognised ledger entry %r as is", account)
                self._unknown[account] = items
                continue
            self._accounts[account] = self._parse_items(account, items)

    def _parse_items(self, account: str, items: Dict[str, Any]) -> Dict[str, ItemRecord]:
        records: Dict[str, ItemRecord] = {}
        for item_id, entry in items.items():
            if not isinstance(entry, dict):
                logging.warning("Keeping unrecognised entry %r of %s as is", item_id, account)
                self._unknown_items.setdefault(account, {})[item_id] = entry
                continue
            records[item_id] = ItemRecord.from_dict(item_id, entry)
        return records

    def records_for(self, account: str) -> Dict[str, ItemRecord]:
        if self._legacy and account not in self._accounts:
            migrated = migrate_legacy(self._legacy, account)
            self._accounts[account] = self._parse_items(account, migrated)
            self._legacy = {}
            logging.info("Migrated %d legacy ledger entries to account %s", len(migrated), account)
        return self._accounts.setdefault(account, {})

    def get(self, account: str, item_id: str) -> Optional[ItemRecord]:
        return self._accounts.get(account, {}).get(item_id)

    def ensure(self, account: str, item_id: str, title: str, url: str, time: str) -> ItemRecord:
        records = self.records_for(account)
        record = records.get(item_id)
        if record is None:
            record = ItemRecord(item_id=item_id, title=title, url=url, time=time)
            records[item_id] = record
        elif record.url and record.url != url:
            logging.warning("Item %s moved from %s to %s; keeping the first url", item_id, record.url, url)
        return record

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self._unknown)
        data.update(self._legacy)
        for account, records in self._accounts.items():
            items = dict(self._unknown_items.get(account, {}))
            items.update((item_id, r.to_dict()) for item_id, r in records.items())
            data[account] = items
        return data

    def flush(self) -> None:
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)
