"""
Tabular views of a parsed Statement.

Flattens the statement into a single chronological event log (one row per cash or
quantity movement) and summarises the positions reconstructed from the trades. Amounts
are converted to floats for analysis; the Statement itself keeps exact Decimals.
"""
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .models import Statement
from .position_tracker import carryover_asset_ids

EVENT_COLUMNS = [
    'timestamp', 'event_type', 'symbol', 'asset_id', 'currency',
    'quantity_change', 'cash_change_native'
]

POSITION_COLUMNS = ['asset_id', 'symbol', 'start_quantity', 'traded_quantity', 'net_quantity']


def build_event_log(statement: Statement) -> pd.DataFrame:
    """
    Aggregates all activity of the statement into a single timeline.

    - Trades become TRADE_BUY / TRADE_SELL, with the commission included in the cash change.
    - Forex conversions become two FX_TRADE rows, one per currency.
    - Dividends become DIVIDEND (credits) or TAX (withholdings).
    - Deposits & withdrawals become DEPOSIT or WITHDRAWAL.

    Args:
        statement (Statement): A parsed statement.

    Returns:
        pd.DataFrame: Events sorted by timestamp (ties keep statement order), with the
        columns listed in EVENT_COLUMNS.
    """
    events: List[Dict[str, Any]] = []

    # --- A. Trades ---
    df_trades = pd.DataFrame(
        [{
            'timestamp': trade.date_time,
            'symbol': trade.symbol,
            'asset_id': trade.asset_id,
            'currency': trade.currency,
            'quantity_change': float(trade.quantity),
            'cash_change_native': float(trade.proceeds + trade.commission)
        } for trade in statement.trades],
        columns=['timestamp', 'symbol', 'asset_id', 'currency', 'quantity_change', 'cash_change_native']
    )
    if not df_trades.empty:
        # Vectorised labelling instead of a per-row branch
        df_trades['event_type'] = np.where(df_trades['quantity_change'] > 0, 'TRADE_BUY', 'TRADE_SELL')
        events.extend(df_trades.to_dict('records'))

    # --- B. Forex ---
    for exchange in statement.forex:
        events.append({
            'timestamp': exchange.date_time,
            'event_type': 'FX_TRADE',
            'symbol': exchange.target_currency,
            'asset_id': None,
            'currency': exchange.target_currency,
            'quantity_change': 0.0,
            'cash_change_native': float(exchange.quantity)
        })
        events.append({
            'timestamp': exchange.date_time,
            'event_type': 'FX_TRADE',
            'symbol': exchange.source_currency,
            'asset_id': None,
            'currency': exchange.source_currency,
            'quantity_change': 0.0,
            'cash_change_native': float(exchange.proceeds)
        })

    # --- C. Dividends & Tax ---
    for dividend in statement.dividends:
        events.append({
            'timestamp': pd.Timestamp(dividend.date),
            'event_type': 'DIVIDEND' if dividend.quantity >= 0 else 'TAX',
            'symbol': dividend.currency,
            'asset_id': None,
            'currency': dividend.currency,
            'quantity_change': 0.0,
            'cash_change_native': float(dividend.quantity)
        })

    # --- D. Deposits & Withdrawals ---
    for deposit in statement.deposits:
        events.append({
            'timestamp': pd.Timestamp(deposit.date),
            'event_type': 'DEPOSIT' if deposit.quantity > 0 else 'WITHDRAWAL',
            'symbol': deposit.currency,
            'asset_id': None,
            'currency': deposit.currency,
            'quantity_change': 0.0,
            'cash_change_native': float(deposit.quantity)
        })

    if not events:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df_event_log = pd.DataFrame(events)
    df_event_log['timestamp'] = pd.to_datetime(df_event_log['timestamp'])
    # Cash-only events belong to no position
    df_event_log['asset_id'] = df_event_log['asset_id'].astype('Int64')

    # A stable sort keeps the split legs of one trade in closing-then-opening order
    df_event_log = df_event_log.sort_values(by='timestamp', kind='stable').reset_index(drop=True)
    return df_event_log.reindex(columns=EVENT_COLUMNS)


def summarise_positions(statement: Statement) -> pd.DataFrame:
    """
    Summarises every position (asset id) found in the statement.

    The start quantity is the carried-over holding for the first asset id of each
    carried-over symbol, which is the id the reader assigns to it. Positions with no
    trades during the period are included.

    Returns:
        pd.DataFrame: One row per asset id, with the columns listed in POSITION_COLUMNS.
    """
    rows = []
    asset_ids = carryover_asset_ids(statement.mark_to_market)
    for symbol, holding in statement.mark_to_market.items():
        rows.append({
            'asset_id': asset_ids[symbol],
            'symbol': symbol,
            'start_quantity': float(holding.start_quantity),
            'traded_quantity': 0.0
        })
    for trade in statement.trades:
        rows.append({
            'asset_id': trade.asset_id,
            'symbol': trade.symbol,
            'start_quantity': 0.0,
            'traded_quantity': float(trade.quantity)
        })

    if not rows:
        return pd.DataFrame(columns=POSITION_COLUMNS)

    df_positions = (
        pd.DataFrame(rows)
        .groupby(['asset_id', 'symbol'], as_index=False, sort=True)[['start_quantity', 'traded_quantity']]
        .sum()
    )
    df_positions['net_quantity'] = df_positions['start_quantity'] + df_positions['traded_quantity']
    return df_positions.reindex(columns=POSITION_COLUMNS)
