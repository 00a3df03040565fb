"""
Period Series

Ordered, read-only sequence of one account's per-period metrics, oldest first.
Answers the two temporal questions the flag rules need:

- previous(i): the immediately preceding period, or None for the first one
- elapsed_since_first_activity(i): how many periods the account has been
  active as of index i, counting the first active period as 1

The series is an immutable snapshot supplied by the metrics provider per
request; nothing here mutates it.
"""

from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from churnguard.models.schemas import PeriodMetric


class InvalidInputError(ValueError):
    """Raised when the engine is called with a malformed series or index."""


class PeriodSeries(Sequence[PeriodMetric]):
    """
    Immutable ordered list of PeriodMetric for one account.

    Periods must be unique by period_key and given in ascending key order.

    Args:
        periods: Per-period metrics, oldest first.
        account_id: Optional owning account, used in error messages only.

    Raises:
        InvalidInputError: If period keys are duplicated or out of order.
    """

    def __init__(self, periods: Iterable[PeriodMetric], account_id: Optional[str] = None):
        self._periods: Tuple[PeriodMetric, ...] = tuple(periods)
        self.account_id = account_id
        self._validate_order()
        self._first_active_index = self._find_first_active_index()

    def _validate_order(self) -> None:
        for earlier, later in zip(self._periods, self._periods[1:]):
            if later.period_key == earlier.period_key:
                raise InvalidInputError(
                    f"Duplicate period_key {later.period_key!r}{self._owner()}"
                )
            if later.period_key < earlier.period_key:
                raise InvalidInputError(
                    f"Periods out of order: {later.period_key!r} after "
                    f"{earlier.period_key!r}{self._owner()}"
                )

    def _owner(self) -> str:
        return f" for account {self.account_id}" if self.account_id else ""

    def _find_first_active_index(self) -> Optional[int]:
        for index, period in enumerate(self._periods):
            if period.has_activity:
                return index
        return None

    # -------------------------------------------------------------------------
    # Sequence protocol
    # -------------------------------------------------------------------------

    def __getitem__(self, index):
        return self._periods[index]

    def __len__(self) -> int:
        return len(self._periods)

    def __iter__(self) -> Iterator[PeriodMetric]:
        return iter(self._periods)

    def __repr__(self) -> str:
        return f"PeriodSeries(account_id={self.account_id!r}, periods={len(self)})"

    # -------------------------------------------------------------------------
    # Temporal queries
    # -------------------------------------------------------------------------

    @property
    def first_active_index(self) -> Optional[int]:
        """Index of the first period with spend, texts or redemptions; None if never active."""
        return self._first_active_index

    @property
    def periods(self) -> List[PeriodMetric]:
        return list(self._periods)

    def check_index(self, index: int) -> int:
        """
        Validate an index into the series.

        Negative indices are rejected rather than wrapped: callers address
        periods by absolute position.

        Raises:
            InvalidInputError: If the series is empty or index is outside [0, len).
        """
        if not self._periods:
            raise InvalidInputError(f"Cannot classify an empty series{self._owner()}")
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidInputError(f"Period index must be an integer, got {index!r}")
        if index < 0 or index >= len(self._periods):
            raise InvalidInputError(
                f"Period index {index} out of range [0, {len(self._periods)}){self._owner()}"
            )
        return index

    def previous(self, index: int) -> Optional[PeriodMetric]:
        self.check_index(index)
        if index == 0:
            return None
        return self._periods[index - 1]

    def elapsed_since_first_activity(self, index: int) -> int:
        """
        Count of periods since the first active one, inclusive, as of index.

        Returns 0 when the account has never been active. Indices before the
        first active period yield values <= 0, which never satisfy the
        drop-flag gate.
        """
        self.check_index(index)
        if self._first_active_index is None:
            return 0
        return index - self._first_active_index + 1

    def index_of(self, period_key: str) -> int:
        for index, period in enumerate(self._periods):
            if period.period_key == period_key:
                return index
        raise InvalidInputError(f"Unknown period_key {period_key!r}{self._owner()}")

    def tail(self, limit: int) -> "PeriodSeries":
        """Trailing `limit` periods as a new series (first activity is recomputed)."""
        if limit <= 0:
            return PeriodSeries([], account_id=self.account_id)
        return PeriodSeries(self._periods[-limit:], account_id=self.account_id)


__all__ = [
    "InvalidInputError",
    "PeriodSeries",
]
