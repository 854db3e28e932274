"""
Result types passed between the engine stages and returned to callers.

All of these are produced fresh for each bar except ``TrendBandState``,
which the engine owns and advances exactly once per bar.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class DetectorOutput:
    """One detector's verdict for the current bar."""

    name: str
    score: float = 0.0
    flags: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def neutral(cls, name: str, *flag_names: str) -> "DetectorOutput":
        """Score 0 with every named flag set to ``False``."""
        return cls(name=name, score=0.0, flags={f: False for f in flag_names})


@dataclass
class TrendBandState:
    """The three most recent trend-band values (``None`` until seen)."""

    current: Optional[float] = None
    previous: Optional[float] = None
    before_that: Optional[float] = None

    def push(self, value: float) -> None:
        self.before_that = self.previous
        self.previous = self.current
        self.current = value

    @property
    def flipped_up(self) -> bool:
        """The line dropped between the previous two values (flip below price)."""
        if self.previous is None or self.before_that is None:
            return False
        return self.previous < self.before_that

    @property
    def flipped_down(self) -> bool:
        if self.previous is None or self.before_that is None:
            return False
        return self.previous > self.before_that

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "previous": self.previous,
            "before_that": self.before_that,
        }


@dataclass(frozen=True)
class CompositeScore:
    value: float = 0.0
    breakdown: dict[str, float] = field(default_factory=dict)


class Direction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    NONE = "none"


@dataclass(frozen=True)
class Signal:
    """A fired signal carries the composite as strength; ``NONE`` carries 0."""

    direction: Direction = Direction.NONE
    strength: float = 0.0

    def __post_init__(self):
        if self.direction == Direction.NONE and self.strength != 0.0:
            raise ValueError("a NONE signal must have zero strength")

    @property
    def fired(self) -> bool:
        return self.direction != Direction.NONE


NO_SIGNAL = Signal()


@dataclass(frozen=True)
class EvaluationResult:
    """Everything the engine computed for one bar."""

    index: int
    composite: CompositeScore
    detectors: dict[str, DetectorOutput]
    trend_band: Optional[float]
    volume_ratio: float
    buy_confluence: int
    sell_confluence: int
    signal: Signal

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain Python types (JSON-safe)."""
        return {
            "index": self.index,
            "composite": self.composite.value,
            "breakdown": dict(self.composite.breakdown),
            "detectors": {
                name: {"score": out.score, "flags": dict(out.flags)}
                for name, out in self.detectors.items()
            },
            "trend_band": self.trend_band,
            "volume_ratio": self.volume_ratio,
            "buy_confluence": self.buy_confluence,
            "sell_confluence": self.sell_confluence,
            "signal": self.signal.direction.value,
            "strength": self.signal.strength,
        }
