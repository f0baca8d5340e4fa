import os
import tempfile
import unittest
from datetime import date, datetime
from decimal import Decimal

from ibkr_statement import data_loader as dl
from ibkr_statement.errors import StatementFormatError
from ibkr_statement.models import Code
from statement_fixtures import (
    ACCOUNT,
    CODES,
    FULL_STATEMENT,
    HEADER,
    MARK_TO_MARKET,
    STOCK_TRADES,
    TRADES_HEADER,
    trade_row,
    write_statement
)

PUT = 'PUT SQQQ 17JUN22@42.0000'


class TestLoadMinimalStatement(unittest.TestCase):
    """
    A statement holding only the mandatory tables and a single trade.
    """

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.lines = (HEADER + ACCOUNT
                      + ['Codes,Header,Code,Meaning', 'Codes,Data,O,Opening Trade']
                      + [TRADES_HEADER, trade_row('AAPL', '10', '150', '-1500', '-1', 'O')])

    def tearDown(self):
        self.tmp.cleanup()

    def test_single_trade(self):
        """
        CASE: One opening trade, no cash report and no carried-over holdings.
        Expectation: exactly one trade with asset id 0 and code OPEN.
        """
        statement = dl.load(write_statement(self.tmp.name, self.lines))

        self.assertEqual(len(statement.trades), 1)
        trade = statement.trades[0]
        self.assertEqual(trade.codes, {Code.OPEN})
        self.assertEqual(trade.asset_id, 0)
        self.assertEqual(str(trade.quantity), '10.0000')
        self.assertEqual(trade.symbol, 'AAPL')

        self.assertEqual(statement.header.start_date, date(2024, 1, 1))
        self.assertEqual(statement.account.number, 'U1234567')
        self.assertEqual(dict(statement.cash_activities), {})
        self.assertEqual(dict(statement.mark_to_market), {})
        self.assertEqual(statement.forex, ())

    def test_byte_order_mark(self):
        statement = dl.load(write_statement(self.tmp.name, self.lines, bom=True))
        self.assertEqual(len(statement.trades), 1)

    def test_crlf_line_endings(self):
        path = os.path.join(self.tmp.name, 'crlf.csv')
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write('\r\n'.join(self.lines) + '\r\n')
        self.assertEqual(len(dl.load(path).trades), 1)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            dl.load(os.path.join(self.tmp.name, 'missing.csv'))

    def test_period_ends_before_it_starts(self):
        lines = list(self.lines)
        lines[4] = 'Statement,Data,Period,"January 31, 2024 - January 1, 2024"'
        with self.assertRaises(StatementFormatError):
            dl.load(write_statement(self.tmp.name, lines))

    def test_generated_before_period_end(self):
        lines = list(self.lines)
        lines[5] = 'Statement,Data,WhenGenerated,"2024-01-15, 09:00:00 UTC"'
        with self.assertRaises(StatementFormatError):
            dl.load(write_statement(self.tmp.name, lines))

    def test_missing_codes_table(self):
        lines = HEADER + ACCOUNT + [TRADES_HEADER, trade_row('AAPL', '10', '150', '-1500', '-1', '')]
        with self.assertRaises(StatementFormatError):
            dl.load(write_statement(self.tmp.name, lines))

    def test_two_mark_to_market_tables(self):
        with self.assertRaises(StatementFormatError):
            dl.load(write_statement(self.tmp.name, self.lines + MARK_TO_MARKET + MARK_TO_MARKET))

    def test_unknown_marker(self):
        lines = self.lines + ['Trades,Notes,Order,Stocks,USD,AAPL,"2024-01-10, 10:00:00",1,1,1,-1,0,0,0,0,O']
        with self.assertRaises(StatementFormatError):
            dl.load(write_statement(self.tmp.name, lines))

    def test_not_a_statement(self):
        with self.assertRaises(StatementFormatError):
            dl.load(write_statement(self.tmp.name, ['hello,world', 'foo,bar']))


class TestLoadFullStatement(unittest.TestCase):
    """
    Every supported table, with carried-over holdings and a sign flip.
    """

    @classmethod
    def setUpClass(cls):
        with tempfile.TemporaryDirectory() as tmp:
            cls.statement = dl.load(write_statement(tmp, FULL_STATEMENT))

    def test_header_and_account(self):
        self.assertEqual(self.statement.header.end_date, date(2024, 1, 31))
        self.assertEqual(self.statement.header.generated_at, datetime(2024, 2, 1, 9, 0, 0))
        self.assertEqual(self.statement.account.owner, 'Jane Doe')

    def test_cash_activities(self):
        self.assertEqual(list(self.statement.cash_activities), ['USD', 'EUR'])
        self.assertEqual(self.statement.cash_activities['USD'].opening_balance, Decimal('1000.50'))

    def test_carryover(self):
        self.assertEqual(list(self.statement.mark_to_market), ['MSFT', PUT])

    def test_trades_are_linked_into_positions(self):
        """
        CASE: MSFT and the short put are carried over (ids 0 and 1). AAPL is bought,
              sold and bought again; the put is bought back past zero.
        Expectation: AAPL gets ids 2 and 3, the put flip closes id 1 and opens id 4.
        """
        trades = self.statement.trades
        self.assertEqual([(t.symbol, t.asset_id, t.quantity) for t in trades], [
            ('AAPL', 2, Decimal('10')),
            ('AAPL', 2, Decimal('-10')),
            ('AAPL', 3, Decimal('5')),
            (PUT, 1, Decimal('5')),
            (PUT, 4, Decimal('3')),
        ])
        self.assertEqual((trades[3].proceeds, trades[3].commission), (Decimal('-1000'), Decimal('-5')))
        self.assertEqual((trades[4].proceeds, trades[4].commission), (Decimal('-600'), Decimal('-3')))
        self.assertEqual(trades[3].codes, {Code.CLOSE})
        self.assertEqual(trades[4].codes, {Code.OPEN})

    def test_position_continuity(self):
        """
        CASE: Sum the carryover and the traded quantities of each asset id.
        Expectation: retired ids net to zero; open ids match the current quantities.
        """
        carryover = {0: Decimal('1200'), 1: Decimal('-5')}
        totals = dict(carryover)
        for trade in self.statement.trades:
            totals[trade.asset_id] = totals.get(trade.asset_id, Decimal('0')) + trade.quantity
        self.assertEqual(totals, {0: Decimal('1200'), 1: Decimal('0'), 2: Decimal('0'),
                                  3: Decimal('5'), 4: Decimal('3')})
        self.assertEqual(totals[4], self.statement.mark_to_market[PUT].end_quantity)

    def test_forex(self):
        self.assertEqual(len(self.statement.forex), 1)
        self.assertEqual(self.statement.forex[0].target_currency, 'EUR')
        self.assertEqual(self.statement.forex[0].source_currency, 'USD')

    def test_deposits_and_dividends(self):
        self.assertEqual([d.quantity for d in self.statement.deposits], [Decimal('2000')])
        self.assertEqual([d.quantity for d in self.statement.dividends], [Decimal('900'), Decimal('-135')])

    def test_statement_is_immutable(self):
        with self.assertRaises(AttributeError):
            self.statement.trades = ()
        with self.assertRaises(TypeError):
            self.statement.cash_activities['CHF'] = None
        with self.assertRaises(AttributeError):
            self.statement.trades.append(None)


class TestRepeatedTradesTables(unittest.TestCase):
    def test_second_section_reuses_symbol(self):
        """
        CASE: Two Stocks tables, the second one selling AAPL still held from the first.
        Expectation: the sale opens a new asset id.
        """
        lines = (HEADER + ACCOUNT + CODES
                 + [TRADES_HEADER, trade_row('AAPL', '10', '150', '-1500', '-1', 'O')]
                 + [TRADES_HEADER, trade_row('AAPL', '-10', '150', '1500', '-1', 'C',
                                             when='2024-01-20, 10:00:00')])
        with tempfile.TemporaryDirectory() as tmp:
            statement = dl.load(write_statement(tmp, lines))
        self.assertEqual([t.asset_id for t in statement.trades], [0, 1])

    def test_aggregate_rows_are_not_trades(self):
        lines = HEADER + ACCOUNT + CODES + STOCK_TRADES
        with tempfile.TemporaryDirectory() as tmp:
            statement = dl.load(write_statement(tmp, lines))
        self.assertEqual(len(statement.trades), 3)


if __name__ == '__main__':
    unittest.main()
