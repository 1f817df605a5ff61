"""Display formatting for customer and company phone numbers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class NumberingPlan:
    country_code: str
    trunk_prefix: str
    national_length: int
    mobile_leads: Tuple[str, ...]
    mobile_groups: Tuple[int, ...]
    landline_leads: Tuple[str, ...]
    landline_groups: Tuple[int, ...]

    def _national(self, digits: str, leads: Tuple[str, ...]) -> Optional[str]:
        for lead in leads:
            if digits.startswith(self.trunk_prefix + lead):
                return digits[len(self.trunk_prefix):]
            if digits.startswith(self.country_code + lead):
                return digits[len(self.country_code):]
        return None

    def _display(self, national: str, groups: Tuple[int, ...]) -> str:
        parts = []
        start = 0
        for size in groups:
            parts.append(national[start:start + size])
            start += size
        return f"+{self.country_code} ({self.trunk_prefix}) " + " ".join(parts)

    def format(self, digits: str) -> Optional[str]:
        national = self._national(digits, self.mobile_leads)
        if (
            national is not None
            and len(national) == self.national_length
            and national.startswith(self.mobile_leads)
        ):
            return self._display(national, self.mobile_groups)

        national = self._national(digits, self.landline_leads)
        if national is not None and len(national) == self.national_length:
            return self._display(national, self.landline_groups)
        return None


UK = NumberingPlan(
    country_code="44",
    trunk_prefix="0",
    national_length=10,
    mobile_leads=("7",),
    mobile_groups=(4, 3, 3),
    landline_leads=("1", "2", "3"),
    landline_groups=(3, 4, 3),
)

DEFAULT_PLANS: Tuple[NumberingPlan, ...] = (UK,)


def normalize(raw: Optional[str], plans: Sequence[NumberingPlan] = DEFAULT_PLANS) -> str:
    """Return ``raw`` in display form, or unchanged when no plan recognises it."""
    if not raw:
        return ""
    digits = _NON_DIGITS.sub("", raw)
    for plan in plans:
        formatted = plan.format(digits)
        if formatted is not None:
            return formatted
    return raw
