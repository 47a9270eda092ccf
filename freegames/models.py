import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlsplit


class ClaimStatus(str, Enum):
    EXISTED = "existed"
    CLAIMED = "claimed"
    FAILED = "failed"
    MANUAL = "manual"


# status -> statuses it may move to; anything else is refused
_TRANSITIONS = {
    None: {ClaimStatus.EXISTED, ClaimStatus.CLAIMED, ClaimStatus.FAILED},
    ClaimStatus.FAILED: {ClaimStatus.MANUAL, ClaimStatus.CLAIMED, ClaimStatus.FAILED},
    ClaimStatus.EXISTED: set(),
    ClaimStatus.CLAIMED: set(),
    ClaimStatus.MANUAL: set(),
}

_RECORD_KEYS = ("title", "time", "url", "status")


def timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def item_id_from_url(url: str) -> str:
    path = urlsplit(url).path.rstrip("/")
    return path.rsplit("/", 1)[-1]


@dataclass
class ItemRecord:
    item_id: str
    title: str
    url: str
    time: str
    status: Optional[ClaimStatus] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def can_move_to(self, status: ClaimStatus) -> bool:
        return status in _TRANSITIONS[self.status]

    def _move(self, status: ClaimStatus) -> bool:
        if not self.can_move_to(status):
            logging.warning(
                "Refusing status change %s -> %s for %s",
                self.status.value if self.status else "unset", status.value, self.title,
            )
            return False
        self.status = status
        return True

    def mark_owned(self) -> None:
        """Found in the library: unset becomes existed, failed becomes manual."""
        if self.status is None:
            self.status = ClaimStatus.EXISTED
        elif self.status is ClaimStatus.FAILED:
            self.status = ClaimStatus.MANUAL

    def mark_claimed(self, time: str) -> bool:
        if not self._move(ClaimStatus.CLAIMED):
            return False
        self.time = time
        return True

    def mark_failed(self) -> bool:
        return self._move(ClaimStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title, "time": self.time, "url": self.url}
        if self.status is not None:
            data["status"] = self.status.value
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, item_id: str, data: Dict[str, Any]) -> "ItemRecord":
        raw_status = data.get("status")
        extra = {k: v for k, v in data.items() if k not in _RECORD_KEYS}
        status = None
        if raw_status:
            try:
                status = ClaimStatus(raw_status)
            except ValueError:
                # written back as is until a real status replaces it
                logging.warning("Unknown status %r for %s, treating it as unset", raw_status, item_id)
                extra["status"] = raw_status
        return cls(
            item_id=item_id,
            title=data.get("title") or "",
            url=data.get("url") or "",
            time=data.get("time") or "",
            status=status,
            extra=extra,
        )
