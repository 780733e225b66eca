"""Capacity provisioners for a single resource dimension."""

from typing import Dict, Hashable

from .errors import ConfigurationError, ResourceExhausted

# Absorbs float noise when shares are recomputed every interval.
CAPACITY_TOLERANCE = 1e-9


class ResourceProvisioner:
    """Tracks allocated versus total capacity of one resource dimension.

    Allocations are recorded per owner, so releasing twice is harmless and
    re-allocating for the same owner replaces the previous receipt.
    """

    def __init__(self, name: str, capacity: float):
        if capacity < 0:
            raise ConfigurationError(f"{name} capacity must be non-negative, got {capacity}")
        self.name = name
        self.capacity = float(capacity)
        self._receipts: Dict[Hashable, float] = {}
        self._allocated = 0.0

    @property
    def allocated(self) -> float:
        return self._allocated

    @property
    def available(self) -> float:
        return max(0.0, self.capacity - self._allocated)

    def allocated_for(self, owner: Hashable) -> float:
        return self._receipts.get(owner, 0.0)

    def is_suitable(self, amount: float, owner: Hashable = None) -> bool:
        """Check whether ``amount`` fits, counting ``owner``'s current receipt as free."""
        current = self._receipts.get(owner, 0.0) if owner is not None else 0.0
        return self._allocated - current + amount <= self.capacity * (1 + CAPACITY_TOLERANCE) + CAPACITY_TOLERANCE

    def allocate(self, owner: Hashable, amount: float) -> None:
        """Reserve ``amount`` for ``owner``; raises ResourceExhausted when it does not fit."""
        if amount < 0:
            raise ValueError(f"Cannot allocate a negative amount of {self.name}: {amount}")
        if not self.is_suitable(amount, owner):
            current = self._receipts.get(owner, 0.0)
            raise ResourceExhausted(self.name, amount, self.available + current)

        self._allocated += amount - self._receipts.get(owner, 0.0)
        self._receipts[owner] = amount

    def release(self, owner: Hashable) -> float:
        """Release everything held by ``owner`` and return the amount freed."""
        amount = self._receipts.pop(owner, 0.0)
        self._allocated = max(0.0, self._allocated - amount)
        return amount

    def release_all(self) -> None:
        self._receipts.clear()
        self._allocated = 0.0

    @property
    def utilization(self) -> float:
        if self.capacity <= 0:
            return 0.0
        return self._allocated / self.capacity

    def __repr__(self) -> str:
        return (f"ResourceProvisioner({self.name!r}, "
                f"{self._allocated:g}/{self.capacity:g})")


class PeProvisioner(ResourceProvisioner):
    """MIPS provisioner of a single processing element."""

    def __init__(self, mips: float):
        if mips <= 0:
            raise ConfigurationError(f"PE capacity must be positive, got {mips} MIPS")
        super().__init__("mips", mips)
