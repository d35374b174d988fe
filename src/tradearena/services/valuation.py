# src/tradearena/services/valuation.py

"""
Portfolio math for trading battles.

A participant's portfolio is rebuilt by replaying their trade log from the
starting capital. Holdings are marked to market with, per symbol, an explicit
closing price if one is supplied, otherwise the last price at which that
symbol traded in the battle (either side). Both participants are therefore
valued against the same prices.
"""

import math
import statistics
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from tradearena.db.models import BattleResults, TradeAction

# Shares/cash below this are treated as zero to absorb float noise
EPSILON = 1e-9


class TradeLike(Protocol):
    id: int
    action: str
    symbol: str
    shares: float
    price: float
    portfolio_value_after: float


@dataclass
class Portfolio:
    cash: float
    holdings: dict[str, float] = field(default_factory=dict)

    def can_buy(self, shares: float, price: float) -> bool:
        return shares * price <= self.cash + EPSILON

    def can_sell(self, symbol: str, shares: float) -> bool:
        return shares <= self.holdings.get(symbol, 0.0) + EPSILON

    def apply(self, action: str, symbol: str, shares: float, price: float) -> None:
        value = shares * price
        if TradeAction(action) == TradeAction.BUY:
            self.cash -= value
            self.holdings[symbol] = self.holdings.get(symbol, 0.0) + shares
        else:
            self.cash += value
            remaining = self.holdings.get(symbol, 0.0) - shares
            if remaining <= EPSILON:
                self.holdings.pop(symbol, None)
            else:
                self.holdings[symbol] = remaining

    def market_value(self, prices: dict[str, float]) -> float:
        """Cash plus every holding at its mark price."""
        return self.cash + sum(
            shares * prices.get(symbol, 0.0) for symbol, shares in self.holdings.items()
        )


def replay(trades: Iterable[TradeLike], starting_capital: float) -> Portfolio:
    """Rebuild a portfolio from its trade log."""
    portfolio = Portfolio(cash=starting_capital)
    for trade in trades:
        portfolio.apply(trade.action, trade.symbol, trade.shares, trade.price)
    return portfolio


def latest_prices(*trade_logs: Iterable[TradeLike]) -> dict[str, float]:
    """Last traded price per symbol across all the given logs, in execution order."""
    merged = sorted((t for log in trade_logs for t in log), key=lambda t: t.id)
    prices: dict[str, float] = {}
    for trade in merged:
        prices[trade.symbol] = trade.price
    return prices


def max_drawdown(values: list[float]) -> float:
    """Largest peak-to-trough fall of a value series, as a percentage."""
    peak = -math.inf
    worst = 0.0
    for value in values:
        peak = max(peak, value)
        if peak > 0:
            worst = max(worst, (peak - value) / peak * 100)
    return round(worst, 4)


def sharpe_ratio(values: list[float]) -> float | None:
    """Mean over standard deviation of step returns; None without enough steps."""
    returns = [
        (current - previous) / previous
        for previous, current in zip(values, values[1:])
        if previous > 0
    ]
    if len(returns) < 2:
        return None
    deviation = statistics.stdev(returns)
    if deviation == 0:
        return None
    return round(statistics.mean(returns) / deviation, 4)


def evaluate(
    trades: list[TradeLike],
    starting_capital: float,
    prices: dict[str, float],
) -> BattleResults:
    """Final results for one participant, marked at `prices`."""
    portfolio = replay(trades, starting_capital)
    final_value = round(portfolio.market_value(prices), 2)
    series = [starting_capital] + [t.portfolio_value_after for t in trades] + [final_value]
    total_return = round(final_value - starting_capital, 2)

    return {
        "final_portfolio_value": final_value,
        "total_return": total_return,
        "return_percentage": round(total_return / starting_capital * 100, 4),
        "trades_executed": len(trades),
        "max_drawdown": max_drawdown(series),
        "sharpe_ratio": sharpe_ratio(series),
    }


def decide_winner(results: dict[str, BattleResults]) -> tuple[str, str]:
    """
    Pick the winner from final portfolio values compared at cent precision.

    Returns (winner, win_condition) where winner is a user_id or 'draw'.
    """
    (first_id, first), (second_id, second) = results.items()
    first_cents = round(first["final_portfolio_value"] * 100)
    second_cents = round(second["final_portfolio_value"] * 100)

    if first_cents == second_cents:
        return "draw", "equal-value"
    if first_cents > second_cents:
        return first_id, "higher-value"
    return second_id, "higher-value"
