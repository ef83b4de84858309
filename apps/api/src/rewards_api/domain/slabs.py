"""Order-value slab resolution.

A slab table maps order value ranges (paise) to a flat points award for the
whole order.  Tables are keyed by merchant industry or category.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence

from rewards_api.core.errors import ValidationError


DEFAULT_CATEGORY_KEY = "default"


@dataclass(frozen=True, slots=True)
class LoyaltySlab:
    min_amount_paise: int
    max_amount_paise: int | None
    points: int

    def matches(self, amount_paise: int) -> bool:
        if amount_paise < self.min_amount_paise:
            return False
        return self.max_amount_paise is None or amount_paise <= self.max_amount_paise

    def as_dict(self) -> dict[str, Any]:
        return {
            "minAmountPaise": self.min_amount_paise,
            "maxAmountPaise": self.max_amount_paise,
            "points": self.points,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LoyaltySlab":
        max_amount = data.get("maxAmountPaise")
        return cls(
            min_amount_paise=max(0, int(data["minAmountPaise"])),
            max_amount_paise=max(0, int(max_amount)) if max_amount is not None else None,
            points=max(0, int(data["points"])),
        )


def normalize_category_key(raw: str | None) -> str:
    key = (raw or "").strip().lower()
    return key or DEFAULT_CATEGORY_KEY


def slab_category_key(industry: str | None, category: str | None) -> str:
    """Industry wins when set, then category, then ``default``."""

    for candidate in (industry, category):
        if candidate and candidate.strip():
            return normalize_category_key(candidate)
    return DEFAULT_CATEGORY_KEY


def parse_stored_slabs(raw: Iterable[Any] | None) -> list[LoyaltySlab]:
    """Load persisted slab dicts, dropping malformed entries."""

    slabs: list[LoyaltySlab] = []
    for entry in raw or []:
        if not isinstance(entry, Mapping):
            continue
        if not isinstance(entry.get("minAmountPaise"), (int, float)):
            continue
        if not isinstance(entry.get("points"), (int, float)):
            continue
        slabs.append(LoyaltySlab.from_mapping(entry))
    return sorted(slabs, key=lambda slab: slab.min_amount_paise)


def normalize_slabs(slabs: Sequence[LoyaltySlab | Mapping[str, Any]]) -> list[LoyaltySlab]:
    """Floor, clamp and sort slabs for storage; at most one open-ended slab, and it must be last."""

    normalized = sorted(
        (slab if isinstance(slab, LoyaltySlab) else LoyaltySlab.from_mapping(slab) for slab in slabs),
        key=lambda slab: slab.min_amount_paise,
    )
    open_ended = [slab for slab in normalized if slab.max_amount_paise is None]
    if len(open_ended) > 1:
        raise ValidationError("Only one open-ended slab (no maximum amount) is allowed.")
    if open_ended and normalized[-1].max_amount_paise is not None:
        raise ValidationError("The open-ended slab must be the highest slab.")
    for slab in normalized:
        if slab.max_amount_paise is not None and slab.max_amount_paise < slab.min_amount_paise:
            raise ValidationError(
                f"Slab maximum {slab.max_amount_paise} is below its minimum {slab.min_amount_paise}."
            )
    return normalized


def points_for_amount(amount_paise: int, slabs: Sequence[LoyaltySlab]) -> int:
    """Points of the first slab containing ``amount_paise``; 0 when none does."""

    for slab in slabs:
        if slab.matches(amount_paise):
            return slab.points
    return 0


class SlabSource(Protocol):
    async def get_loyalty_slab_config(self, category_id: str) -> list[LoyaltySlab] | None:
        ...


class SlabResolver:
    """Resolves the slab point pool for an order, or ``None`` when no table is configured."""

    def __init__(self, source: SlabSource) -> None:
        self._source = source

    async def resolve_slab_points(self, amount_paise: int, category_key: str) -> int | None:
        slabs = await self._source.get_loyalty_slab_config(category_key)
        if not slabs:
            return None
        return points_for_amount(amount_paise, slabs)
