"""
Tests for portfolio summaries and realized profit/loss.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import config
from models import Transaction
from services.cash_ledger import CashLedger
from services.position_book import PositionBook
from services.summary import SummaryCalculator, calculate_realized_pnl
from tests.conftest import FakePriceOracle

USER = "investor-1"
T0 = datetime(2024, 3, 1, 10, 0, 0)


def _trade(tx_id, side, quantity, price, minutes=0, symbol="SBER", commission="0"):
    quantity = Decimal(str(quantity))
    price = Decimal(str(price))
    return Transaction(
        id=tx_id,
        user_id=USER,
        symbol=symbol,
        asset_type="stock",
        transaction_type=side,
        quantity=quantity,
        price=price,
        commission=Decimal(commission),
        total_amount=quantity * price,
        timestamp=T0 + timedelta(minutes=minutes),
    )


def _run_scenario_a(book: PositionBook) -> None:
    CashLedger().deposit(USER, 1000)
    book.apply_trade(USER, "SBER", "BUY", 10, 250)
    book.apply_trade(USER, "SBER", "BUY", 5, 300)
    book.apply_trade(USER, "SBER", "SELL", 15, 280)


class TestRealizedPnl:
    """Tests for the realized profit/loss approximation."""

    def test_round_trip_without_commission(self) -> None:
        """Deposit, two buys and a full sell realize 15*280 - 15*266.67 = 200."""
        book = PositionBook(commission_rate=0)
        _run_scenario_a(book)

        calculator = SummaryCalculator(position_book=book)
        assert book.get_position(USER, "SBER") is None
        assert calculator.calculate_realized_pnl(USER) == Decimal("200")

    def test_round_trip_with_default_commission(self) -> None:
        """Commissions raise the buy average and reduce sell proceeds."""
        _run_scenario_a(PositionBook())

        realized = SummaryCalculator().calculate_realized_pnl(USER)
        # (4200 - 4.2) - (4000 + 4) / 15 * 15
        assert realized == Decimal("191.8")

    def test_only_earlier_buys_count(self) -> None:
        """A buy placed after a sell does not change that sell's basis."""
        history = [
            _trade(1, "buy", 10, 100, minutes=0),
            _trade(2, "sell", 5, 150, minutes=5),
            _trade(3, "buy", 10, 1000, minutes=10),
        ]
        assert calculate_realized_pnl(history) == Decimal("250")

    def test_sells_do_not_consume_buys(self) -> None:
        """Every sell is measured against the average of all earlier buys."""
        history = [
            _trade(1, "buy", 10, 100, minutes=0),
            _trade(2, "buy", 10, 200, minutes=1),
            _trade(3, "sell", 10, 200, minutes=2),
            _trade(4, "sell", 10, 200, minutes=3),
        ]
        assert calculate_realized_pnl(history) == Decimal("1000")

    def test_buy_at_same_timestamp_is_not_earlier(self) -> None:
        """A buy sharing the sell's timestamp is excluded from its basis."""
        history = [
            _trade(2, "sell", 1, 150),
            _trade(1, "buy", 1, 100),
        ]
        assert calculate_realized_pnl(history) == Decimal("150")

    def test_same_timestamp_buy_counts_for_later_sells(self) -> None:
        """A buy tied with one sell still forms the basis of later sells."""
        history = [
            _trade(1, "buy", 2, 100, minutes=0),
            _trade(2, "buy", 2, 200, minutes=5),
            _trade(3, "sell", 1, 150, minutes=5),
            _trade(4, "sell", 1, 150, minutes=10),
        ]
        # First sell: basis 100 -> 50. Second sell: basis 150 -> 0.
        assert calculate_realized_pnl(history) == Decimal("50")

    def test_sell_without_earlier_buys_uses_zero_basis(self) -> None:
        """A sell with no earlier buy counts its full proceeds."""
        history = [_trade(1, "sell", 2, 50, commission="1")]
        assert calculate_realized_pnl(history) == Decimal("99")

    def test_symbols_are_tracked_separately(self) -> None:
        """Buys of one symbol do not affect the basis of another."""
        history = [
            _trade(1, "buy", 1, 100, symbol="SBER"),
            _trade(2, "buy", 1, 1000, symbol="GAZP", minutes=1),
            _trade(3, "sell", 1, 110, symbol="SBER", minutes=2),
        ]
        assert calculate_realized_pnl(history) == Decimal("10")

    def test_cash_movements_are_ignored(self) -> None:
        """Deposits and withdrawals never contribute to realized PnL."""
        history = [
            _trade(1, "deposit", 1, 1000, symbol="CASH"),
            _trade(2, "withdraw", 1, 500, symbol="CASH", minutes=1),
        ]
        assert calculate_realized_pnl(history) == 0


class TestGetSummary:
    """Tests for SummaryCalculator.get_summary."""

    def test_empty_portfolio(self) -> None:
        """A user with nothing has an all-zero summary."""
        summary = SummaryCalculator().get_summary("nobody")
        assert summary.total_value == 0
        assert summary.total_profit_loss == 0
        assert summary.total_profit_loss_percentage == 0
        assert summary.asset_count == 0

    def test_closed_portfolio_reports_realized_only(self) -> None:
        """After selling everything the summary holds only realized PnL."""
        book = PositionBook(commission_rate=0)
        _run_scenario_a(book)

        summary = SummaryCalculator(position_book=book).get_summary(USER)
        assert summary.asset_count == 0
        assert summary.total_value == 0
        assert summary.unrealized_profit_loss == 0
        assert summary.realized_profit_loss == Decimal("200")
        assert summary.total_profit_loss == Decimal("200")
        assert summary.total_profit_loss_percentage == 0

    def test_unrealized_after_refresh(self) -> None:
        """Refreshing prices feeds unrealized PnL into the totals."""
        book = PositionBook(price_oracle=FakePriceOracle({"SBER": 120}), commission_rate=0)
        book.apply_trade(USER, "SBER", "BUY", 10, 100)

        summary = SummaryCalculator(position_book=book).get_summary(USER, refresh_prices=True)

        assert summary.asset_count == 1
        assert summary.total_value == Decimal("1200")
        assert summary.unrealized_profit_loss == Decimal("200")
        assert summary.realized_profit_loss == 0
        assert summary.total_profit_loss_percentage == Decimal("16.6667")

    def test_summary_uses_cached_values_by_default(self) -> None:
        """Without refresh_prices the oracle is not consulted."""
        oracle = FakePriceOracle({"SBER": 120})
        book = PositionBook(price_oracle=oracle)
        book.apply_trade(USER, "SBER", "BUY", 10, 100)

        summary = SummaryCalculator(position_book=book).get_summary(USER)

        assert oracle.requested == []
        assert summary.total_value == Decimal("1000")

    def test_asset_count_matches_open_positions(self) -> None:
        """asset_count is the number of open positions."""
        book = PositionBook()
        book.apply_trade(USER, "SBER", "BUY", 1, 100)
        book.apply_trade(USER, "BTC", "BUY", "0.1", 60000, asset_type="crypto")
        book.apply_trade(USER, "GAZP", "BUY", 1, 100)
        book.apply_trade(USER, "GAZP", "SELL", 1, 100)

        assert SummaryCalculator(position_book=book).get_summary(USER).asset_count == 2


class TestGetPortfolio:
    """Tests for the combined portfolio overview."""

    def test_overview_combines_cash_positions_and_totals(self) -> None:
        """Cash balance is capital minus position value; total cost is value minus PnL."""
        book = PositionBook(price_oracle=FakePriceOracle({"SBER": 60}), commission_rate=0)
        CashLedger().deposit(USER, 1000)
        book.apply_trade(USER, "SBER", "BUY", 10, 50)

        overview = SummaryCalculator(position_book=book).get_portfolio(USER, refresh_prices=True)

        assert [p.symbol for p in overview.positions] == ["SBER"]
        assert overview.summary.total_value == Decimal("600")
        assert overview.summary.unrealized_profit_loss == Decimal("100")
        assert overview.cash_balance == Decimal("400")
        assert overview.total_cost == Decimal("500")

    def test_cash_balance_delegates_to_ledger(self) -> None:
        """get_cash_balance matches CashLedger.get_available_capital."""
        ledger = CashLedger()
        ledger.deposit(USER, 750)
        calculator = SummaryCalculator(cash_ledger=ledger)
        assert calculator.get_cash_balance(USER) == ledger.get_available_capital(USER) == Decimal("750")


class TestGetTransactions:
    """Tests for transaction history reads."""

    def test_newest_first_with_limit(self) -> None:
        """History is newest first and honours an explicit limit."""
        ledger = CashLedger()
        for amount in (1, 2, 3, 4):
            ledger.deposit(USER, amount)

        history = SummaryCalculator().get_transactions(USER, limit=2)

        assert [tx.total_amount for tx in history] == [Decimal("4"), Decimal("3")]

    def test_default_limit_comes_from_settings(self, monkeypatch) -> None:
        """Without a limit the configured default applies."""
        monkeypatch.setenv("TRANSACTIONS_DEFAULT_LIMIT", "3")
        config.reload_settings()
        ledger = CashLedger()
        for amount in range(1, 6):
            ledger.deposit(USER, amount)

        assert len(SummaryCalculator().get_transactions(USER)) == 3

    def test_history_is_per_user(self) -> None:
        """One user's history never includes another's transactions."""
        ledger = CashLedger()
        ledger.deposit(USER, 10)
        ledger.deposit("someone-else", 20)

        history = SummaryCalculator().get_transactions(USER)
        assert [tx.user_id for tx in history] == [USER]
