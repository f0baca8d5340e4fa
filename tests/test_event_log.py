import tempfile
import unittest

import pandas as pd

from ibkr_statement import data_loader as dl
from ibkr_statement import event_log as el
from statement_fixtures import ACCOUNT, CODES, FULL_STATEMENT, HEADER, write_statement

PUT = 'PUT SQQQ 17JUN22@42.0000'


class TestEventLog(unittest.TestCase):
    """
    Flattening a parsed statement into tables.
    """

    @classmethod
    def setUpClass(cls):
        with tempfile.TemporaryDirectory() as tmp:
            cls.statement = dl.load(write_statement(tmp, FULL_STATEMENT))
            cls.empty_statement = dl.load(write_statement(tmp, HEADER + ACCOUNT + CODES, name='empty.csv'))

    def test_event_log_is_chronological(self):
        """
        CASE: Five trades, one conversion, one dividend with its tax and one deposit.
        Expectation: ten events in time order; split legs keep closing-then-opening order.
        """
        df = el.build_event_log(self.statement)

        self.assertEqual(list(df.columns), el.EVENT_COLUMNS)
        self.assertEqual(len(df), 10)
        self.assertTrue(df['timestamp'].is_monotonic_increasing)
        self.assertEqual(list(df['event_type']), [
            'DEPOSIT', 'TRADE_BUY', 'TRADE_SELL', 'TRADE_BUY', 'FX_TRADE', 'FX_TRADE',
            'DIVIDEND', 'TAX', 'TRADE_BUY', 'TRADE_BUY'
        ])
        self.assertEqual(list(df['asset_id'].iloc[-2:]), [1, 4])

    def test_trade_cash_includes_commission(self):
        df = el.build_event_log(self.statement)
        closing = df[(df['symbol'] == PUT) & (df['asset_id'] == 1)].iloc[0]
        self.assertAlmostEqual(closing['cash_change_native'], -1005.0)
        self.assertAlmostEqual(closing['quantity_change'], 5.0)

    def test_forex_moves_both_currencies(self):
        df = el.build_event_log(self.statement)
        fx = df[df['event_type'] == 'FX_TRADE'].set_index('currency')['cash_change_native']
        self.assertAlmostEqual(fx['EUR'], 10000.0)
        self.assertAlmostEqual(fx['USD'], -11000.0)

    def test_cash_events_have_no_asset_id(self):
        df = el.build_event_log(self.statement)
        cash_only = df[~df['event_type'].str.startswith('TRADE')]
        self.assertTrue(cash_only['asset_id'].isna().all())

    def test_empty_statement(self):
        df = el.build_event_log(self.empty_statement)
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), el.EVENT_COLUMNS)


class TestSummarisePositions(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        with tempfile.TemporaryDirectory() as tmp:
            cls.statement = dl.load(write_statement(tmp, FULL_STATEMENT))

    def test_one_row_per_asset_id(self):
        """
        CASE: Carried-over MSFT (never traded), closed and reopened AAPL, flipped put.
        Expectation: five positions; only MSFT, the reopened AAPL and the new put are open.
        """
        df = el.summarise_positions(self.statement)

        self.assertEqual(list(df.columns), el.POSITION_COLUMNS)
        self.assertEqual(list(df['asset_id']), [0, 1, 2, 3, 4])
        self.assertEqual(list(df['net_quantity']), [1200.0, 0.0, 0.0, 5.0, 3.0])

        df_open = df[df['net_quantity'] != 0]
        self.assertEqual(list(df_open['symbol']), ['MSFT', 'AAPL', PUT])

    def test_carryover_start_quantity(self):
        df = el.summarise_positions(self.statement).set_index('asset_id')
        self.assertEqual(df.loc[1, 'start_quantity'], -5.0)
        self.assertEqual(df.loc[1, 'traded_quantity'], 5.0)

    def test_no_positions(self):
        with tempfile.TemporaryDirectory() as tmp:
            statement = dl.load(write_statement(tmp, HEADER + ACCOUNT + CODES))
        df = el.summarise_positions(statement)
        self.assertTrue(df.empty)
        self.assertIsInstance(df, pd.DataFrame)


if __name__ == '__main__':
    unittest.main()
