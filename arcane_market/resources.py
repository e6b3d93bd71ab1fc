from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from arcane_market.config import EngineSettings


class ResourceKind(StrEnum):
    mana = "mana"
    vitality = "vitality"
    arcanum = "arcanum"
    aether = "aether"


@dataclass(frozen=True, slots=True)
class ResourceSpec:
    kind: ResourceKind
    base_price: int
    min_price: int
    max_price: int
    # Fraction of holdings lost per game cycle (aether: chance of discharge).
    decay_rate: float
    equilibrium: int
    volatility: float


RESOURCE_SPECS: dict[ResourceKind, ResourceSpec] = {
    ResourceKind.mana: ResourceSpec(ResourceKind.mana, 20, 10, 100, 0.20, 100, 0.3),
    ResourceKind.vitality: ResourceSpec(ResourceKind.vitality, 25, 10, 125, 0.50, 100, 0.5),
    ResourceKind.arcanum: ResourceSpec(ResourceKind.arcanum, 35, 10, 175, 0.0, 100, 0.2),
    ResourceKind.aether: ResourceSpec(ResourceKind.aether, 100, 10, 500, 0.10, 100, 0.8),
}

_missing = set(ResourceKind) - set(RESOURCE_SPECS)
if _missing:
    raise RuntimeError(f"RESOURCE_SPECS is missing entries for: {sorted(_missing)}")

# Auction rounds always run in this order.
AUCTION_SEQUENCE: tuple[ResourceKind, ...] = (
    ResourceKind.mana,
    ResourceKind.vitality,
    ResourceKind.arcanum,
    ResourceKind.aether,
)

DEFAULT_PRICE = 50


def parse_resource(resource: ResourceKind | str | None) -> ResourceKind | None:
    """Return the matching kind, or None for anything outside the closed set."""

    if isinstance(resource, ResourceKind):
        return resource
    if not isinstance(resource, str):
        return None
    try:
        return ResourceKind(resource)
    except ValueError:
        return None


def spec_for(resource: ResourceKind | str) -> ResourceSpec | None:
    kind = parse_resource(resource)
    return RESOURCE_SPECS[kind] if kind is not None else None


def position_bounds(resource: ResourceKind, settings: EngineSettings) -> tuple[int, int]:
    """Tradable [min, max] for a submitted position on `resource`.

    The auction band is fixed unless settings opt in to per-resource bounds.
    """

    if settings.position_bounds == "per_resource":
        spec = RESOURCE_SPECS[resource]
        return spec.min_price, spec.max_price
    return settings.position_min_price, settings.position_max_price
