"""
Climate Engine — Time Series
Ordered mapping from date to unit-checked value.

Lookup policy: ``series[date]`` raises ``MissingDataError`` for a date that
was never set, ``series.get(date, default)`` returns the default. There is
no interpolation.
"""

from typing import Dict, Iterator, List, Optional, Tuple
import logging

from .units import UnitVal
from .errors import MissingDataError

logger = logging.getLogger(__name__)


class TimeSeries:
    """Dated values keyed by exact date."""

    def __init__(self, name: str = ""):
        self.name = name
        self._data: Dict[float, UnitVal] = {}

    @staticmethod
    def _key(date: float) -> float:
        return float(date)

    def set(self, date: float, value: UnitVal):
        """Insert or replace the value at ``date``."""
        if not isinstance(value, UnitVal):
            raise TypeError(f"{self.name}: time series values must be UnitVal")
        self._data[self._key(date)] = value

    def __setitem__(self, date: float, value: UnitVal):
        self.set(date, value)

    def __getitem__(self, date: float) -> UnitVal:
        try:
            return self._data[self._key(date)]
        except KeyError:
            raise MissingDataError(f"{self.name or 'time series'}: no data for date {date}") from None

    def get(self, date: float, default: Optional[UnitVal] = None) -> Optional[UnitVal]:
        return self._data.get(self._key(date), default)

    def exists(self, date: float) -> bool:
        return self._key(date) in self._data

    __contains__ = exists

    def dates(self) -> List[float]:
        return sorted(self._data)

    def items(self) -> List[Tuple[float, UnitVal]]:
        return [(d, self._data[d]) for d in self.dates()]

    @property
    def first_date(self) -> float:
        if not self._data:
            raise MissingDataError(f"{self.name or 'time series'}: empty")
        return min(self._data)

    @property
    def last_date(self) -> float:
        if not self._data:
            raise MissingDataError(f"{self.name or 'time series'}: empty")
        return max(self._data)

    def truncate(self, after: float) -> int:
        """
        Drop every entry dated later than ``after``.

        Returns:
            Number of entries removed.
        """
        late = [d for d in self._data if d > after]
        for d in late:
            del self._data[d]
        if late:
            logger.debug(f"{self.name}: truncated {len(late)} entries after {after}")
        return len(late)

    def clear(self):
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[float]:
        return iter(self.dates())

    def __repr__(self) -> str:
        return f"TimeSeries({self.name!r}, {len(self)} entries)"
