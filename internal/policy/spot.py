"""Spot-capacity policy: map a service's spot preference to a capacity strategy.

  NoSpot           FARGATE       base=n  weight=1
  OnlySpot         FARGATE_SPOT  base=0  weight=1
  UpscaleWithSpot  FARGATE       base=1  weight=1
                   FARGATE_SPOT  base=0  weight=MAX_CAPACITY_WEIGHT

UpscaleWithSpot keeps the first instance on regular capacity and sends every
instance beyond it to spot.
"""

from internal.models.types import (
    CapacityProvider, CapacityProviderEntry, CapacityStrategy, SpotPreference,
)

# ECS accepts weights in [0, 1000].
MAX_CAPACITY_WEIGHT = 1000


def capacity_strategy(pref: SpotPreference, desired_count: int) -> CapacityStrategy:
    """Return the capacity provider strategy for a service.

    Args:
        pref: The service's configured spot preference.
        desired_count: Configured number of instances (>= 0).

    Raises:
        ValueError: If desired_count is negative or not an integer, or pref is unknown.
    """
    if isinstance(desired_count, bool) or not isinstance(desired_count, int):
        raise ValueError(f"desired_count must be an integer, got {desired_count!r}")
    if desired_count < 0:
        raise ValueError(f"desired_count must be >= 0, got {desired_count}")

    if pref == SpotPreference.NO_SPOT:
        entries = (CapacityProviderEntry(CapacityProvider.ON_DEMAND, base=desired_count, weight=1),)
    elif pref == SpotPreference.ONLY_SPOT:
        entries = (CapacityProviderEntry(CapacityProvider.SPOT, base=0, weight=1),)
    elif pref == SpotPreference.UPSCALE_WITH_SPOT:
        entries = (
            CapacityProviderEntry(CapacityProvider.ON_DEMAND, base=min(1, desired_count), weight=1),
            CapacityProviderEntry(CapacityProvider.SPOT, base=0, weight=MAX_CAPACITY_WEIGHT),
        )
    else:
        raise ValueError(f"Unknown spot preference: {pref!r}")
    return CapacityStrategy(entries=entries)
