"""Cash and net positions, mutated only by the owning exchange."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from backtester.core.types import Position, Side


@dataclass(frozen=True)
class FillEffect:
    """How one fill changed the account."""

    realized_pnl: Decimal
    closes_position: bool


class Account:
    """Cash balance plus signed net positions keyed by symbol.

    Positions are frozen; every fill replaces the symbol's snapshot.
    Same-direction fills average the cost basis. Opposite-direction fills
    realize P&L on the closed quantity and, if they cross zero, open the
    remainder at the fill price.
    """

    def __init__(self, starting_cash: Decimal, leverage: Decimal = Decimal(1)) -> None:
        self._starting_cash = starting_cash
        self._cash = starting_cash
        self._leverage = leverage
        self._positions: dict[str, Position] = {}

    @property
    def starting_cash(self) -> Decimal:
        return self._starting_cash

    @property
    def cash(self) -> Decimal:
        return self._cash

    @property
    def positions(self) -> dict[str, Position]:
        """Frozen snapshots of every position ever opened, flat ones included."""
        return dict(self._positions)

    def position(self, symbol: str) -> Decimal:
        """Signed quantity held in ``symbol``."""
        pos = self._positions.get(symbol)
        return pos.quantity if pos else Decimal(0)

    def realized_pnl(self) -> Decimal:
        return sum((p.realized_pnl for p in self._positions.values()), Decimal(0))

    # ── Valuation ───────────────────────────────────────────────

    def equity(self, marks: Mapping[str, Decimal]) -> Decimal:
        """Cash plus mark-to-market value of every position."""
        value = self._cash
        for symbol, pos in self._positions.items():
            if not pos.is_flat:
                value += pos.market_value(marks.get(symbol, pos.avg_price))
        return value

    def gross_exposure(self, marks: Mapping[str, Decimal]) -> Decimal:
        return sum(
            (
                abs(pos.quantity) * marks.get(symbol, pos.avg_price)
                for symbol, pos in self._positions.items()
            ),
            Decimal(0),
        )

    def buying_power(self, marks: Mapping[str, Decimal]) -> Decimal:
        """Notional still available for new exposure: equity × leverage − gross exposure."""
        return self.equity(marks) * self._leverage - self.gross_exposure(marks)

    def opening_quantity(self, symbol: str, side: Side, quantity: Decimal) -> Decimal:
        """Part of an order that would increase the absolute position."""
        held = self.position(symbol)
        if held == 0 or (held > 0) == (side == Side.BUY):
            return quantity
        return max(quantity - abs(held), Decimal(0))

    # ── Mutation ────────────────────────────────────────────────

    def apply_fill(
        self,
        symbol: str,
        side: Side,
        quantity: Decimal,
        price: Decimal,
        commission: Decimal,
    ) -> FillEffect:
        """Move cash and replace the position snapshot for one fill."""
        notional = quantity * price
        if side == Side.BUY:
            self._cash -= notional + commission
        else:
            self._cash += notional - commission

        pos = self._positions.get(symbol) or Position(symbol=symbol)
        signed = quantity * side.sign
        held = pos.quantity

        if held == 0 or (held > 0) == (signed > 0):
            # Same direction → average in
            total = abs(held) + quantity
            self._positions[symbol] = pos.model_copy(update={
                "quantity": held + signed,
                "avg_price": (abs(held) * pos.avg_price + notional) / total,
            })
            return FillEffect(realized_pnl=Decimal(0), closes_position=False)

        # Opposite direction → reduce, close or flip
        closed = min(abs(held), quantity)
        direction = 1 if held > 0 else -1
        realized = closed * (price - pos.avg_price) * direction
        remaining = held + signed

        if remaining == 0:
            avg_price = Decimal(0)
        elif (remaining > 0) != (held > 0):
            avg_price = price
        else:
            avg_price = pos.avg_price

        self._positions[symbol] = pos.model_copy(update={
            "quantity": remaining,
            "avg_price": avg_price,
            "realized_pnl": pos.realized_pnl + realized,
        })
        return FillEffect(realized_pnl=realized, closes_position=True)
