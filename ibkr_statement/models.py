"""
Value objects produced by the activity statement reader.

Every object is built once by its parser and never mutated afterwards.
Invariants are checked on construction and reported as StatementFormatError.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Tuple

from .errors import StatementFormatError


def _require_stripped(value: str, name: str, allow_empty: bool = False) -> None:
    if value is None:
        raise StatementFormatError(f"{name} is missing")
    if value != value.strip():
        raise StatementFormatError(f"{name} may not contain leading or trailing whitespace: {value!r}")
    if not allow_empty and not value:
        raise StatementFormatError(f"{name} may not be empty")


class Code(Enum):
    """Annotations that explain why a trade took place."""
    # The trade resulted from the assignment of an option contract
    ASSIGNMENT = 'ASSIGNMENT'
    # An option position was closed because the contract expired
    EXPIRED = 'EXPIRED'
    # Acquisition of an asset, not necessarily the first one
    OPEN = 'OPEN'
    # Sale, transfer or settlement of an asset, not necessarily the last one
    CLOSE = 'CLOSE'
    # Partial fulfilment of an order
    PARTIAL_EXECUTION = 'PARTIAL_EXECUTION'
    # The whole trade was executed against the broker or an affiliate
    INTERNAL_TRADE = 'INTERNAL_TRADE'
    # Only the fractional portion was executed against the broker or an affiliate
    FRACTIONAL_PORTION_TRADED_INTERNALLY = 'FRACTIONAL_PORTION_TRADED_INTERNALLY'
    # The broker liquidated the asset to cure a margin violation
    MARGIN_VIOLATION = 'MARGIN_VIOLATION'


@dataclass(frozen=True)
class Header:
    """
    Period covered by the statement.

    Attributes:
        start_date (date): First day included in the statement.
        end_date (date): Last day included in the statement (inclusive).
        generated_at (datetime): When the broker generated the file.
    """
    start_date: date
    end_date: date
    generated_at: datetime

    def __post_init__(self) -> None:
        if self.start_date is None or self.end_date is None:
            raise StatementFormatError("The statement period is missing")
        if self.generated_at is None:
            raise StatementFormatError("The statement generation time is missing")
        if self.start_date > self.end_date:
            raise StatementFormatError(
                f"The period starts after it ends: {self.start_date} > {self.end_date}")
        if self.generated_at.date() < self.end_date:
            raise StatementFormatError(
                f"The statement was generated ({self.generated_at}) before the period ended ({self.end_date})")


@dataclass(frozen=True)
class Account:
    number: str
    owner: str

    def __post_init__(self) -> None:
        _require_stripped(self.number, 'number')
        _require_stripped(self.owner, 'owner')


@dataclass(frozen=True)
class CashActivity:
    """Opening and closing cash balance of one currency; both may be negative."""
    currency: str
    opening_balance: Decimal
    closing_balance: Decimal

    def __post_init__(self) -> None:
        _require_stripped(self.currency, 'currency')
        if self.opening_balance is None:
            raise StatementFormatError(f"{self.currency} has no opening balance")
        if self.closing_balance is None:
            raise StatementFormatError(f"{self.currency} has no closing balance")


@dataclass(frozen=True)
class MarkToMarket:
    """Units held at the start and at the end of the statement's period."""
    start_quantity: Decimal
    end_quantity: Decimal


@dataclass(frozen=True)
class ParsedSymbol:
    """
    Normalised identity of an instrument.

    Attributes:
        value (str): Display form, e.g. 'AAPL' or 'PUT SQQQ 17JUN22@42.0000'.
        underlying_asset (str): Symbol of the underlying if this is an option, otherwise ''.
        strike_price (Decimal): Strike price if this is an option, otherwise 0.
    """
    value: str
    underlying_asset: str = ''
    strike_price: Decimal = Decimal('0')

    def __post_init__(self) -> None:
        _require_stripped(self.value, 'symbol')
        _require_stripped(self.underlying_asset, 'underlying_asset', allow_empty=True)
        if self.strike_price < 0:
            raise StatementFormatError(f"strike_price may not be negative: {self.strike_price}")

    @property
    def is_option(self) -> bool:
        return bool(self.underlying_asset)


@dataclass(frozen=True)
class Trade:
    """
    One economic trade leg.

    Attributes:
        date_time (datetime): When the trade was executed.
        symbol (str): Normalised symbol of the asset.
        asset_id (int): Groups the trades of one continuously-held position.
        quantity (Decimal): Units traded; positive when buying, negative when selling. Never zero.
        price (Decimal): Price per unit.
        proceeds (Decimal): Amount received; negative if the trade cost money.
        commission (Decimal): Fees, usually negative. Rebates and corrections may be positive.
        currency (str): Currency of all amounts.
        codes (FrozenSet[Code]): Annotations attached to the trade.
        underlying_asset (str): Underlying symbol for options, otherwise ''.
        strike_price (Decimal): Strike price for options, otherwise 0.
    """
    date_time: datetime
    symbol: str
    asset_id: int
    quantity: Decimal
    price: Decimal
    proceeds: Decimal
    commission: Decimal
    currency: str
    codes: FrozenSet[Code] = frozenset()
    underlying_asset: str = ''
    strike_price: Decimal = Decimal('0')

    def __post_init__(self) -> None:
        if self.date_time is None:
            raise StatementFormatError("date_time is missing")
        _require_stripped(self.symbol, 'symbol')
        if self.asset_id < 0:
            raise StatementFormatError(f"asset_id may not be negative: {self.asset_id}")
        if self.quantity == 0:
            raise StatementFormatError(f"quantity may not be zero: {self.symbol}")
        if self.price < 0:
            raise StatementFormatError(f"price may not be negative: {self.price}")
        _require_stripped(self.currency, 'currency')
        _require_stripped(self.underlying_asset, 'underlying_asset', allow_empty=True)
        if self.strike_price < 0:
            raise StatementFormatError(f"strike_price may not be negative: {self.strike_price}")
        object.__setattr__(self, 'codes', frozenset(self.codes))


@dataclass(frozen=True)
class Forex:
    """
    A currency conversion.

    A positive quantity means target_currency was bought with source_currency.
    The commission is always expressed in USD.
    """
    date_time: datetime
    source_currency: str
    target_currency: str
    quantity: Decimal
    price: Decimal
    proceeds: Decimal
    commission: Decimal

    def __post_init__(self) -> None:
        if self.date_time is None:
            raise StatementFormatError("date_time is missing")
        _require_stripped(self.source_currency, 'source_currency')
        _require_stripped(self.target_currency, 'target_currency')
        if self.price < 0:
            raise StatementFormatError(f"price may not be negative: {self.price}")


@dataclass(frozen=True)
class Deposit:
    """Funds moved into (positive quantity) or out of (negative quantity) the account."""
    date: date
    currency: str
    quantity: Decimal
    description: str

    def __post_init__(self) -> None:
        if self.date is None:
            raise StatementFormatError("date is missing")
        _require_stripped(self.currency, 'currency')


@dataclass(frozen=True)
class Dividend:
    """A cash dividend (positive quantity) or tax withheld from one (negative quantity)."""
    date: date
    currency: str
    quantity: Decimal
    description: str

    def __post_init__(self) -> None:
        if self.date is None:
            raise StatementFormatError("date is missing")
        _require_stripped(self.currency, 'currency')


@dataclass(frozen=True)
class Statement:
    """
    A parsed activity statement.

    Collections are converted to tuples and read-only mappings on construction.
    """
    header: Header
    account: Account
    cash_activities: Mapping[str, CashActivity]
    trades: Tuple[Trade, ...]
    forex: Tuple[Forex, ...]
    deposits: Tuple[Deposit, ...]
    dividends: Tuple[Dividend, ...]
    mark_to_market: Mapping[str, MarkToMarket] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.header is None:
            raise StatementFormatError("header is missing")
        if self.account is None:
            raise StatementFormatError("account is missing")
        for name in ('cash_activities', 'mark_to_market'):
            value = getattr(self, name)
            if value is None:
                raise StatementFormatError(f"{name} is missing")
            object.__setattr__(self, name, MappingProxyType(dict(value)))
        for name in ('trades', 'forex', 'deposits', 'dividends'):
            value = getattr(self, name)
            if value is None:
                raise StatementFormatError(f"{name} is missing")
            object.__setattr__(self, name, tuple(value))
