from dataclasses import dataclass

from vebalance.constants import SLOPE_MULTIPLIER


@dataclass(frozen=True)
class DecayFunction:
    """Linear voting-power curve ``max(0, bias - slope * t)``.

    Both parameters carry ``SLOPE_MULTIPLIER``; ``evaluate`` divides it out.
    The curve is anchored at absolute time zero, so two locks with the same
    principal and expiry share the same parameters whatever their start time.
    """

    bias: int = 0
    slope: int = 0

    @classmethod
    def from_principal(cls, principal: int, expiry: int, max_lock_duration: int) -> "DecayFunction":
        if principal < 0:
            raise ValueError("Principal cannot be negative")
        if max_lock_duration <= 0:
            raise ValueError("Max lock duration must be positive")
        slope = principal * SLOPE_MULTIPLIER // max_lock_duration
        return cls(bias=slope * expiry, slope=slope)

    def evaluate(self, t: int) -> int:
        value = self.bias - self.slope * t
        if value <= 0:
            return 0
        return value // SLOPE_MULTIPLIER

    def combine(self, other: "DecayFunction") -> "DecayFunction":
        return DecayFunction(self.bias + other.bias, self.slope + other.slope)

    def negate(self) -> "DecayFunction":
        return DecayFunction(-self.bias, -self.slope)

    def expire(self, slope: int, boundary: int) -> "DecayFunction":
        # Drops a slope bucket together with the bias it carried up to the boundary
        return DecayFunction(self.bias - slope * boundary, self.slope - slope)

    def __add__(self, other: "DecayFunction") -> "DecayFunction":
        return self.combine(other)

    def __sub__(self, other: "DecayFunction") -> "DecayFunction":
        return self.combine(other.negate())

    def __neg__(self) -> "DecayFunction":
        return self.negate()

    @property
    def is_zero(self) -> bool:
        return self.bias == 0 and self.slope == 0

    @property
    def is_negative(self) -> bool:
        return self.bias < 0 or self.slope < 0


ZERO = DecayFunction()
