"""
Trade reconstruction.

The statement lists trades row by row but never says which trades belong to the same
position. Positions are recovered by keeping a signed running total per symbol:

- Continuation: the total moves without crossing zero. The trade joins the open
  position, which gets a fresh asset id if none is open.
- Flat close: the total lands exactly on zero. The trade closes the position and the
  asset id is retired, so a later re-entry receives a new one.
- Sign flip: the total jumps across zero (e.g. short 5, buy 8). The single row is split
  into a leg that closes the old position and a leg that opens the opposite one.

Asset ids are scoped to one parse and only link the trades of one Statement.
"""
import logging
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Set

import pandas as pd

from . import config as cfg
from .errors import PositionError, StatementFormatError
from .models import Code, MarkToMarket, Trade
from .sections import clean_number, is_data_row, parse_date_time, require_columns
from .symbols import parse_symbol

log = logging.getLogger(__name__)

_QUANTUM = Decimal(1).scaleb(-cfg.PRECISION)

TRADE_COLUMNS = ['Asset Category', 'Currency', 'Symbol', 'Date/Time', 'Quantity', 'T. Price',
                 'Proceeds', 'Comm/Fee', 'Code']


class Leg(NamedTuple):
    """The part of a reported trade that applies to a single position."""
    asset_id: int
    quantity: Decimal


# ==========================================
# SECTION 1: POSITION BOOKKEEPING
# ==========================================
def carryover_asset_ids(carryover: Mapping[str, MarkToMarket]) -> Dict[str, int]:
    """Asset ids of the carried-over positions: 0, 1, ... in carryover order."""
    return {symbol: asset_id for asset_id, symbol in enumerate(carryover)}


class PositionTracker:
    """
    Signed running totals of every open position, owned by a single parse.

    Args:
        carryover (Mapping[str, MarkToMarket]): Positions held before the statement period,
            keyed by normalised symbol. Each one is assigned an asset id up front, in order
            (see carryover_asset_ids()).
    """
    def __init__(self, carryover: Optional[Mapping[str, MarkToMarket]] = None) -> None:
        self._symbol_to_asset_id: Dict[str, int] = {}
        self._running_totals: Dict[int, Decimal] = {}
        self._referenced_symbols: Set[str] = set()

        carryover = carryover or {}
        for symbol, asset_id in carryover_asset_ids(carryover).items():
            self._symbol_to_asset_id[symbol] = asset_id
            self._running_totals[asset_id] = carryover[symbol].start_quantity
        self._next_asset_id = len(carryover)

    def asset_id(self, symbol: str) -> Optional[int]:
        """The asset id currently mapped to the symbol, if any."""
        return self._symbol_to_asset_id.get(symbol)

    def running_total(self, asset_id: Optional[int]) -> Decimal:
        """Units held by the position; zero for unknown or retired ids."""
        return self._running_totals.get(asset_id, Decimal('0'))

    @property
    def running_totals(self) -> Dict[int, Decimal]:
        return dict(self._running_totals)

    def _open(self, symbol: str, total: Decimal) -> int:
        asset_id = self._next_asset_id
        self._next_asset_id += 1
        self._symbol_to_asset_id[symbol] = asset_id
        self._running_totals[asset_id] = total
        return asset_id

    def _retire(self, symbol: str, asset_id: int) -> None:
        del self._running_totals[asset_id]
        self._symbol_to_asset_id.pop(symbol, None)

    def apply(self, symbol: str, quantity: Decimal) -> List[Leg]:
        """
        Applies one reported trade to the positions.

        Args:
            symbol (str): Normalised symbol of the asset.
            quantity (Decimal): Signed number of units traded.

        Returns:
            List[Leg]: One leg, or two legs (closing leg first) when the trade flips the
            position from short to long or vice versa.

        Raises:
            PositionError: If the quantity is zero, or a position that was never opened
                is being closed.
        """
        if quantity == 0:
            raise PositionError(f"Trade of {symbol} has a quantity of zero")
        self._referenced_symbols.add(symbol)

        asset_id = self._symbol_to_asset_id.get(symbol)
        old_total = self.running_total(asset_id)
        new_total = old_total + quantity

        if old_total != 0 and new_total != 0 and (old_total > 0) != (new_total > 0):
            if asset_id is None:
                raise PositionError(f"The position being closed is unknown: {symbol}")
            self._retire(symbol, asset_id)
            closing = Leg(asset_id, -old_total)
            opening = Leg(self._open(symbol, new_total), new_total)
            log.info("Split %s trade of %s into %s (asset %d) and %s (asset %d)", symbol, quantity,
                     closing.quantity, closing.asset_id, opening.quantity, opening.asset_id)
            return [closing, opening]

        if new_total == 0:
            if asset_id is None:
                raise PositionError(f"The position being closed is unknown: {symbol}")
            self._retire(symbol, asset_id)
            return [Leg(asset_id, quantity)]

        if asset_id is None:
            asset_id = self._open(symbol, new_total)
        else:
            self._running_totals[asset_id] = new_total
        return [Leg(asset_id, quantity)]

    def end_section(self) -> None:
        """
        Forgets the asset ids of the symbols referenced since the previous call.

        Running totals are kept, and symbols the section never mentioned keep their ids,
        so carried-over holdings are not mistaken for new positions in a later section.
        """
        for symbol in self._referenced_symbols:
            self._symbol_to_asset_id.pop(symbol, None)
        self._referenced_symbols = set()


# ==========================================
# SECTION 2: ROW RESOLUTION
# ==========================================
def resolve_codes(raw: str, token_to_codes: Mapping[str, FrozenSet[Code]], row=None) -> FrozenSet[Code]:
    """
    Converts a ';'-separated Code cell into codes.

    INTERNAL_TRADE subsumes FRACTIONAL_PORTION_TRADED_INTERNALLY; some trades carry both.

    Raises:
        StatementFormatError: If a token is missing from the Codes legend.
    """
    codes: Set[Code] = set()
    for token in str(raw).split(cfg.CODE_SEPARATOR):
        token = token.strip()
        if not token:
            continue
        if token not in token_to_codes:
            raise StatementFormatError(f"Unknown code: {token!r}", row)
        codes.update(token_to_codes[token])

    if Code.INTERNAL_TRADE in codes:
        codes.discard(Code.FRACTIONAL_PORTION_TRADED_INTERNALLY)
    return frozenset(codes)


def split_amount(amount: Decimal, proportion: Decimal) -> tuple:
    """Splits an amount into (closing share, remainder) without losing a cent."""
    closing = (proportion * amount).quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)
    return closing, amount - closing


# ==========================================
# SECTION 3: RECONSTRUCTION
# ==========================================
def reconstruct_trades(
    sections: Iterable[pd.DataFrame],
    token_to_codes: Mapping[str, FrozenSet[Code]],
    carryover: Mapping[str, MarkToMarket]
) -> List[Trade]:
    """
    Rebuilds the trades of the stock and option 'Trades' tables.

    Rows are processed in file order. Every emitted Trade carries the asset id of the
    position it belongs to; rows that flip a position are emitted as two trades that
    share the row's date, symbol, price and currency, with proceeds and commission split
    in proportion to the quantity of each leg.

    Args:
        sections (Iterable[pd.DataFrame]): Decoded Trades sections (Forex excluded).
        token_to_codes (Mapping[str, FrozenSet[Code]]): Output of parsers.parse_codes().
        carryover (Mapping[str, MarkToMarket]): Output of parsers.parse_mark_to_market().

    Returns:
        List[Trade]: The trades, closing legs before opening legs.
    """
    tracker = PositionTracker(carryover)
    trades = []

    for section in sections:
        require_columns(section, TRADE_COLUMNS, cfg.SECTION_TRADES)
        for _, row in section.iterrows():
            if log.isEnabledFor(logging.DEBUG):
                log.debug("row: %s", row.to_dict())
            if not is_data_row(row):
                continue

            category = row['Asset Category']
            if category not in cfg.TRADED_ASSET_CATEGORIES:
                raise StatementFormatError(f"Unsupported asset category: {category!r}", row)

            codes = resolve_codes(row['Code'], token_to_codes, row)
            symbol = parse_symbol(row['Symbol'])
            date_time = parse_date_time(row['Date/Time'], cfg.LOCAL_DATE_TIME_FORMAT)
            quantity = clean_number(row['Quantity'])
            price = clean_number(row['T. Price'])
            proceeds = clean_number(row['Proceeds'])
            commission = clean_number(row['Comm/Fee'])
            currency = row['Currency']

            try:
                legs = tracker.apply(symbol.value, quantity)
            except PositionError as e:
                raise PositionError(str(e), row) from e

            # Attributes shared by every leg of the row
            common = {
                'date_time': date_time,
                'symbol': symbol.value,
                'price': price,
                'currency': currency,
                'underlying_asset': symbol.underlying_asset,
                'strike_price': symbol.strike_price
            }

            if len(legs) == 1:
                leg = legs[0]
                trades.append(Trade(asset_id=leg.asset_id, quantity=leg.quantity, proceeds=proceeds,
                                    commission=commission, codes=codes, **common))
                continue

            closing, opening = legs
            proportion = (abs(closing.quantity) / abs(quantity)).quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)
            closing_proceeds, opening_proceeds = split_amount(proceeds, proportion)
            closing_commission, opening_commission = split_amount(commission, proportion)

            trades.append(Trade(asset_id=closing.asset_id, quantity=closing.quantity, proceeds=closing_proceeds,
                                commission=closing_commission, codes=codes - {Code.OPEN}, **common))
            trades.append(Trade(asset_id=opening.asset_id, quantity=opening.quantity, proceeds=opening_proceeds,
                                commission=opening_commission, codes=codes - {Code.CLOSE}, **common))

        tracker.end_section()

    return trades
