from dataclasses import dataclass

from .config import EarningsConfig


@dataclass(frozen=True)
class EarningsPolicy:
    """Earnings of `rate` for every `per` views.

    A zero or negative divisor is rejected at construction rather than
    left to fail inside a worker thread.
    """

    rate: float
    per: int

    def __post_init__(self):
        if self.per <= 0:
            raise ValueError(f"Earnings divisor must be positive, got {self.per}")
        if self.rate < 0:
            raise ValueError(f"Earnings rate must not be negative, got {self.rate}")

    @classmethod
    def from_config(cls, config: EarningsConfig) -> "EarningsPolicy":
        return cls(rate=config.rate, per=config.per)

    def delta(self, views_delta: int) -> float:
        return (views_delta / self.per) * self.rate

    def total(self, views: int) -> float:
        return self.delta(views)
