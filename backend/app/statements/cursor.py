from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .records import Cursor, RawSourceRecord


@dataclass(frozen=True)
class CursorState:
    cursor: Optional[Cursor]
    carried_balance: Decimal
    has_more: bool


class CursorManager:
    """
    Keyset position plus the balance carried into the next (older) page.

    The cursor is always the last record consumed by the merged page, never
    the last record a source happened to fetch, and never an offset.
    """

    def __init__(self, seed_balance: Decimal = Decimal("0")):
        self._state = CursorState(cursor=None, carried_balance=seed_balance, has_more=True)

    @property
    def cursor(self) -> Optional[Cursor]:
        return self._state.cursor

    @property
    def carried_balance(self) -> Decimal:
        return self._state.carried_balance

    @property
    def has_more(self) -> bool:
        return self._state.has_more

    def snapshot(self) -> CursorState:
        return self._state

    def reset(self, seed_balance: Decimal) -> None:
        self._state = CursorState(cursor=None, carried_balance=seed_balance, has_more=True)

    def exhaust(self) -> None:
        self._state = CursorState(
            cursor=self._state.cursor,
            carried_balance=self._state.carried_balance,
            has_more=False,
        )

    def advance(
        self,
        last_consumed: Optional[RawSourceRecord],
        new_carried_balance: Decimal,
        page_was_full: bool,
    ) -> None:
        if last_consumed is None:
            # empty page: nothing older matches the filters
            self.exhaust()
            return

        new_cursor = Cursor.of(last_consumed)
        if self._state.cursor is not None and not new_cursor < self._state.cursor:
            raise ValueError("cursor must move strictly backwards in (timestamp, id)")

        self._state = CursorState(
            cursor=new_cursor,
            carried_balance=new_carried_balance,
            has_more=page_was_full,
        )
