"""Usage accounting -- the default hook the gateway reports finished calls to.

Token counts are estimates computed from text, not provider-reported
figures: the gateway only sees the serialized input and the final output.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta
from typing import Protocol

import msgspec

_CJK = re.compile(r"[\u4e00-\u9fff]")
_WORD = re.compile(r"[a-zA-Z]+")

REPORT_RECENT_RECORDS = 50


class UsageHook(Protocol):
    """Receives one notification per completed call."""

    def record(
        self, provider_name: str, model_id: str, input_text: str, output_text: str
    ) -> object:
        ...


def estimate_tokens(text: str) -> int:
    """Rough token estimate.

    CJK characters count 1.5 and ASCII words 1.3.  The remainder, text
    length minus CJK characters minus the number of words, counts 0.5.
    The sum is rounded up.
    """
    cjk = len(_CJK.findall(text))
    words = _WORD.findall(text)
    other = len(text) - cjk - len(words)
    return math.ceil(cjk * 1.5 + len(words) * 1.3 + other * 0.5)


class UsageRecord(msgspec.Struct, frozen=True):
    provider: str
    model_id: str
    timestamp: datetime
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class UsageSummary(msgspec.Struct, frozen=True):
    total_tokens: int = 0
    call_count: int = 0


class UsageReport(msgspec.Struct, frozen=True):
    total_records: int
    total_tokens: int
    today: UsageSummary
    records: list[UsageRecord]


class UsageTracker:
    """In-memory usage history, usable directly as a gateway usage hook."""

    def __init__(self, clock=datetime.now) -> None:
        self._clock = clock
        self._history: list[UsageRecord] = []

    def record(
        self, provider_name: str, model_id: str, input_text: str, output_text: str
    ) -> UsageRecord:
        entry = UsageRecord(
            provider=provider_name,
            model_id=model_id,
            timestamp=self._clock(),
            input_tokens=estimate_tokens(input_text),
            output_tokens=estimate_tokens(output_text),
        )
        self._history.append(entry)
        return entry

    def history(self, provider: str | None = None) -> list[UsageRecord]:
        if provider is None:
            return list(self._history)
        return [r for r in self._history if r.provider == provider]

    def today(self, provider: str | None = None) -> UsageSummary:
        """Totals for records made since local midnight."""
        today = self._clock().date()
        records = [r for r in self.history(provider) if r.timestamp.date() == today]
        return UsageSummary(
            total_tokens=sum(r.total_tokens for r in records),
            call_count=len(records),
        )

    def prune(self, days: int = 30) -> int:
        """Drop records older than *days*; return how many were removed."""
        cutoff = self._clock() - timedelta(days=days)
        before = len(self._history)
        self._history = [r for r in self._history if r.timestamp > cutoff]
        return before - len(self._history)

    def report(self, provider: str | None = None) -> str:
        """JSON usage report with totals and the most recent records."""
        records = self.history(provider)
        report = UsageReport(
            total_records=len(records),
            total_tokens=sum(r.total_tokens for r in records),
            today=self.today(provider),
            records=records[-REPORT_RECENT_RECORDS:],
        )
        return msgspec.json.format(msgspec.json.encode(report), indent=2).decode()
