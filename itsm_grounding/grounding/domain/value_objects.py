"""
Grounding Value Objects
========================

Pure, stateless pieces of the grounding pipeline:
- TemporalFilter: date / month / recent detection in a query
- QueryTopics: which snapshot sections a query asks about
- FabricationPatterns: the pattern-based fabrication detector
"""

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from itsm_grounding.snapshot.domain import TicketRecord

MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

MONTH_DAY_PATTERN = re.compile(
    r"\b(" + "|".join(MONTH_NAMES) + r")\s+(\d{1,2})(?:st|nd|rd|th)?\b(?:,?\s+(20\d{2})\b)?", re.IGNORECASE
)
ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
US_DATE_PATTERN = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b")
YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")
MONTH_PATTERN = re.compile(r"\b(" + "|".join(MONTH_NAMES) + r")\b", re.IGNORECASE)
# "may" is also a verb; only read it as a month next to a year or a preposition
AMBIGUOUS_MAY_PATTERN = re.compile(r"\b(?:in|of|during|since|from|until|for)\s+may\b|\bmay\s+20\d{2}\b", re.IGNORECASE)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class TemporalFilter:
    """
    Time restriction detected in a query.

    ``kind`` is ``date`` (creation-timestamp prefix ``YYYY-MM-DD``),
    ``month`` (month and year of creation) or ``recent`` (newest first).
    """
    kind: str
    day: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None

    DATE = "date"
    MONTH = "month"
    RECENT = "recent"

    @staticmethod
    def _iso(year: int, month: int, day: int) -> Optional[str]:
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    @classmethod
    def parse(cls, query: str, today: date) -> "TemporalFilter":
        """Detect an explicit date, else a month (with optional year), else recent."""
        match = MONTH_DAY_PATTERN.search(query)
        if match:
            year = int(match.group(3)) if match.group(3) else today.year
            iso = cls._iso(year, MONTH_NAMES.index(match.group(1).lower()) + 1, int(match.group(2)))
            if iso:
                return cls(kind=cls.DATE, day=iso)

        match = ISO_DATE_PATTERN.search(query)
        if match:
            iso = cls._iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            if iso:
                return cls(kind=cls.DATE, day=iso)

        match = US_DATE_PATTERN.search(query)
        if match:
            iso = cls._iso(int(match.group(3)), int(match.group(1)), int(match.group(2)))
            if iso:
                return cls(kind=cls.DATE, day=iso)

        for match in MONTH_PATTERN.finditer(query):
            name = match.group(1).lower()
            if name == "may" and not AMBIGUOUS_MAY_PATTERN.search(query):
                continue
            year_match = YEAR_PATTERN.search(query)
            year = int(year_match.group(1)) if year_match else today.year
            return cls(kind=cls.MONTH, month=MONTH_NAMES.index(name) + 1, year=year)

        return cls(kind=cls.RECENT)

    @property
    def label(self) -> str:
        if self.kind == self.DATE:
            return f"on {self.day}"
        if self.kind == self.MONTH:
            return f"in {MONTH_NAMES[self.month - 1].capitalize()} {self.year}"
        return "recently"

    def matches(self, record: TicketRecord) -> bool:
        if self.kind == self.DATE:
            return bool(record.created_date_time) and record.created_date_time.startswith(self.day)
        if self.kind == self.MONTH:
            created = record.created_at()
            return created is not None and created.month == self.month and created.year == self.year
        return True


@dataclass(frozen=True)
class QueryTopics:
    """Snapshot sections a query (plus recent conversation) is about."""
    employees: bool = False
    all_tickets: bool = False
    incidents: bool = False
    service_requests: bool = False
    categories: bool = False
    services: bool = False
    service_detail: bool = False
    teams: bool = False
    departments: bool = False

    HISTORY_TURNS = 4

    @classmethod
    def detect(cls, query: str, history: Optional[Iterable[str]] = None) -> "QueryTopics":
        lowered = query.lower()
        recent = list(history or [])[-cls.HISTORY_TURNS:]
        combined = " ".join([lowered] + [turn.lower() for turn in recent])

        mentions_request = "service request" in combined or bool(re.search(r"\bsr\s*#?\d+", lowered))
        all_tickets = (
            "ticket" in combined
            and "incident" not in lowered
            and "service request" not in lowered
            and not re.search(r"\bsr[\s#]", lowered)
        )
        detail = "detail" in lowered

        return cls(
            employees=any(word in combined for word in ("user", "employee", "find")),
            all_tickets=all_tickets,
            incidents=not all_tickets and ("incident" in combined or "ticket" in combined),
            service_requests=mentions_request,
            categories="categor" in combined,
            services=("service" in combined and "service request" not in combined) or detail,
            service_detail=detail,
            teams="team" in combined,
            departments="department" in combined,
        )


class FabricationPatterns:
    """
    Pattern-based fabrication detector.

    Tokens are found by regular expression and checked for literal presence
    in the supplied facts. This trades recall for predictability: anything
    the patterns do not recognise passes unchecked.
    """
    IDENTIFIER = re.compile(r"\b[0-9A-Fa-f]{32}\b")
    EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
    REFERENCE = re.compile(
        r"\b(Incident|Service Request|SR|Ticket|Request)\s*#?\s*(\d{4,})\b", re.IGNORECASE
    )
    WRITE_CLAIMS = [
        (
            re.compile(
                r"\bI(?:'ve| have)\s+(?:submitted|created)\s+(?:the|your)\s+(?:service\s+)?(?:request|ticket|incident)\b",
                re.IGNORECASE,
            ),
            "I've prepared the request for your confirmation",
        ),
        (
            re.compile(
                r"\b(?:service\s+)?(?:request|ticket|incident)\b[^.!?\n]*?\bhas\s+been\s+(?:submitted|created)\b",
                re.IGNORECASE,
            ),
            "request is ready for your confirmation",
        ),
    ]

    IDENTIFIER_PLACEHOLDER = "[ID]"
    EMAIL_PLACEHOLDER = "[email on file]"
    REFERENCE_PLACEHOLDER = "[unverified reference]"
