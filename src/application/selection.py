from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Callable, Iterable, Union

from application.aggregation import available_months, available_years
from domain.models import month_key

if TYPE_CHECKING:
    from application.store import TransactionStore

logger = logging.getLogger(__name__)

_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class NoMonthSelected:
    pass


@dataclass(frozen=True)
class MonthSelected:
    key: str
    placeholder: bool = False


MonthState = Union[NoMonthSelected, MonthSelected]


def is_month_key(value: str) -> bool:
    return bool(_MONTH_KEY_RE.match(value or ""))


class MonthSelection:
    """
    Which month the views are filtered to.

    Derived from the store, never authoritative over it: whenever the set of
    available months changes the selection is re-validated, falling back to
    the latest month with data or, for an empty store, the current calendar
    month as a placeholder.
    """

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._today = today
        self._state: MonthState = NoMonthSelected()
        self._available: list[str] = []

    @property
    def state(self) -> MonthState:
        return self._state

    @property
    def current(self) -> str | None:
        return self._state.key if isinstance(self._state, MonthSelected) else None

    @property
    def available(self) -> list[str]:
        return list(self._available)

    def attach(self, store: "TransactionStore") -> None:
        store.subscribe(lambda: self.sync(available_months(store.all())))
        self.sync(available_months(store.all()))

    def sync(self, available: Iterable[str]) -> MonthState:
        self._available = sorted(set(available))
        current = self.current
        if current is not None and current in self._available:
            self._state = MonthSelected(current)
            return self._state

        if self._available:
            self._state = MonthSelected(self._available[-1])
        else:
            today = self._today()
            self._state = MonthSelected(month_key(today), placeholder=True)
        if current != self.current:
            logger.info("Month selection moved from=%s to=%s", current, self.current)
        return self._state

    def select(self, key: str) -> MonthState:
        if key not in self._available:
            raise ValueError(f"Month {key!r} has no transactions")
        self._state = MonthSelected(key)
        return self._state

    def previous(self) -> MonthState:
        return self._step(-1)

    def next(self) -> MonthState:
        return self._step(1)

    def _step(self, offset: int) -> MonthState:
        current = self.current
        if current not in self._available:
            return self._state
        index = self._available.index(current) + offset
        if 0 <= index < len(self._available):
            self._state = MonthSelected(self._available[index])
        return self._state


class YearSelection:
    """Same policy as MonthSelection, over calendar years."""

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._today = today
        self._current: int | None = None
        self._available: list[int] = []

    @property
    def current(self) -> int | None:
        return self._current

    @property
    def available(self) -> list[int]:
        return list(self._available)

    def attach(self, store: "TransactionStore") -> None:
        store.subscribe(lambda: self.sync(available_years(store.all())))
        self.sync(available_years(store.all()))

    def sync(self, available: Iterable[int]) -> int:
        self._available = sorted(set(available))
        if self._current is not None and self._current in self._available:
            return self._current
        if self._available:
            self._current = self._available[-1]
        else:
            self._current = self._today().year
        return self._current

    def select(self, year: int) -> int:
        if year not in self._available:
            raise ValueError(f"Year {year} has no transactions")
        self._current = year
        return year

    def previous(self) -> int | None:
        return self._step(-1)

    def next(self) -> int | None:
        return self._step(1)

    def _step(self, offset: int) -> int | None:
        if self._current not in self._available:
            return self._current
        index = self._available.index(self._current) + offset
        if 0 <= index < len(self._available):
            self._current = self._available[index]
        return self._current
