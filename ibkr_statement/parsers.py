"""
Parsers for the individual tables of an activity statement.

Each parser receives the decoded sections of one category and validates the exact
set of field names it expects: unknown values in a key column abort the parse,
while fields that are known but irrelevant are ignored explicitly.
"""
import logging
from decimal import Decimal
from typing import Dict, FrozenSet, List

import pandas as pd

from . import config as cfg
from .errors import StatementFormatError
from .models import Account, CashActivity, Code, Deposit, Dividend, Forex, Header, MarkToMarket
from .sections import (
    clean_number,
    is_data_row,
    parse_date,
    parse_date_time,
    require_columns,
    require_count
)
from .symbols import parse_symbol

log = logging.getLogger(__name__)


# ==========================================
# SECTION 1: KEY/VALUE TABLES
# ==========================================
def parse_header(sections: List[pd.DataFrame]) -> Header:
    """
    Parses the 'Statement' table.

    Args:
        sections (List[pd.DataFrame]): Must contain exactly one section.

    Returns:
        Header: The statement period and generation time.
    """
    require_count(sections, 1, cfg.SECTION_STATEMENT)
    section = sections[0]
    require_columns(section, ['Field Name', 'Field Value'], cfg.SECTION_STATEMENT)

    start_date, end_date, generated_at = None, None, None
    for _, row in section.iterrows():
        if not is_data_row(row):
            continue
        name = row['Field Name']
        value = row['Field Value']

        if name in cfg.HEADER_IGNORED_FIELDS:
            continue
        elif name == 'Title':
            if value != cfg.STATEMENT_TITLE:
                raise StatementFormatError(f"Unsupported statement type: {value!r}", row)
        elif name == 'Period':
            if start_date is not None:
                raise StatementFormatError("Period appears more than once", row)
            period = value.split(cfg.PERIOD_SEPARATOR)
            if len(period) != 2:
                raise StatementFormatError(f"Malformed period: {value!r}", row)
            start_date = parse_date(period[0], cfg.HEADER_DATE_FORMAT)
            end_date = parse_date(period[1], cfg.HEADER_DATE_FORMAT)
        elif name == 'WhenGenerated':
            if generated_at is not None:
                raise StatementFormatError("WhenGenerated appears more than once", row)
            # The trailing time zone abbreviation (e.g. 'EST') is dropped
            parts = value.strip().rsplit(' ', 1)
            local_time = parts[0] if len(parts) == 2 and parts[1].isalpha() else value
            generated_at = parse_date_time(local_time, cfg.HEADER_DATE_TIME_FORMAT)
        else:
            raise StatementFormatError(f"Unsupported field name: {name!r}", row)

    return Header(start_date, end_date, generated_at)


def parse_account(sections: List[pd.DataFrame]) -> Account:
    """Parses the 'Account Information' table (exactly one section)."""
    require_count(sections, 1, cfg.SECTION_ACCOUNT)
    section = sections[0]
    require_columns(section, ['Field Name', 'Field Value'], cfg.SECTION_ACCOUNT)

    owner, number = None, None
    for _, row in section.iterrows():
        if not is_data_row(row):
            continue
        name = row['Field Name']
        if name == 'Name':
            if owner is not None:
                raise StatementFormatError("The account owner appears more than once", row)
            owner = row['Field Value']
        elif name == 'Account':
            if number is not None:
                raise StatementFormatError("The account number appears more than once", row)
            number = row['Field Value']
        elif name not in cfg.ACCOUNT_IGNORED_FIELDS:
            raise StatementFormatError(f"Unsupported field name: {name!r}", row)

    return Account(number, owner)


# ==========================================
# SECTION 2: CASH & CODES
# ==========================================
def parse_cash_activities(sections: List[pd.DataFrame]) -> Dict[str, CashActivity]:
    """
    Parses the 'Cash Report' tables.

    Only the starting and ending cash of each currency are retained. The
    'Base Currency Summary' rows repeat data that also appears under the currency's
    own name and are skipped.

    Args:
        sections (List[pd.DataFrame]): Zero or more Cash Report sections.

    Returns:
        Dict[str, CashActivity]: Cash activity keyed by currency, in order of appearance.
    """
    opening_balance: Dict[str, Decimal] = {}
    closing_balance: Dict[str, Decimal] = {}
    currencies: List[str] = []

    for section in sections:
        require_columns(section, ['Currency Summary', 'Currency', 'Total'], cfg.SECTION_CASH_REPORT)
        for _, row in section.iterrows():
            if not is_data_row(row):
                continue
            currency = row['Currency']
            if currency == cfg.BASE_CURRENCY_SUMMARY:
                continue
            if currency not in currencies:
                currencies.append(currency)

            summary = row['Currency Summary']
            if summary == cfg.CASH_OPENING_SUMMARY:
                balances = opening_balance
            elif summary == cfg.CASH_CLOSING_SUMMARY:
                balances = closing_balance
            elif summary in cfg.CASH_IGNORED_SUMMARIES:
                continue
            else:
                raise StatementFormatError(f"Unsupported Currency Summary: {summary!r}", row)

            if currency in balances:
                raise StatementFormatError(
                    f"{currency} already has a '{summary}' balance of {balances[currency]}", row)
            balances[currency] = clean_number(row['Total'], scale=False)

    return {
        currency: CashActivity(currency, opening_balance.get(currency), closing_balance.get(currency))
        for currency in currencies
    }


def parse_codes(sections: List[pd.DataFrame]) -> Dict[str, FrozenSet[Code]]:
    """
    Parses the 'Codes' legend.

    Meanings listed in config.CODE_MEANINGS map to their codes; any other meaning maps
    to an empty set so that trades carrying it are accepted without annotation.

    Returns:
        Dict[str, FrozenSet[Code]]: Code token (e.g. 'O') -> codes it stands for.
    """
    require_count(sections, 1, cfg.SECTION_CODES)
    section = sections[0]
    require_columns(section, ['Code', 'Meaning'], cfg.SECTION_CODES)

    token_to_codes: Dict[str, FrozenSet[Code]] = {}
    token_to_meaning: Dict[str, str] = {}
    for _, row in section.iterrows():
        if not is_data_row(row):
            continue
        token = row['Code']
        meaning = row['Meaning']
        previous = token_to_meaning.get(token)
        if previous is not None and previous != meaning:
            raise StatementFormatError(f"Code {token!r} has multiple meanings: {previous!r}, {meaning!r}", row)

        names = cfg.CODE_MEANINGS.get(meaning, ())
        if not names:
            log.debug("Ignoring code %r: %s", token, meaning)
        token_to_meaning[token] = meaning
        token_to_codes[token] = frozenset(Code[name] for name in names)

    return token_to_codes


# ==========================================
# SECTION 3: HOLDINGS CARRYOVER
# ==========================================
def parse_mark_to_market(sections: List[pd.DataFrame]) -> Dict[str, MarkToMarket]:
    """
    Parses the 'Mark-to-Market Performance Summary' table.

    The prior quantity of each stock or option is the position carried over from the
    previous statement.

    Args:
        sections (List[pd.DataFrame]): At most one section. A statement without any
            holdings carries nothing over.

    Returns:
        Dict[str, MarkToMarket]: Start/end quantities keyed by normalised symbol, in file order.
    """
    if len(sections) > 1:
        raise StatementFormatError(
            f"Expected at most 1 '{cfg.SECTION_MARK_TO_MARKET}' section, found {len(sections)}")

    symbol_to_mark_to_market: Dict[str, MarkToMarket] = {}
    for section in sections:
        require_columns(section, ['Asset Category', 'Symbol', 'Prior Quantity', 'Current Quantity'],
                        cfg.SECTION_MARK_TO_MARKET)
        for _, row in section.iterrows():
            if not is_data_row(row):
                continue
            category = row['Asset Category']
            if category in cfg.MARK_TO_MARKET_SKIPPED_CATEGORIES:
                continue
            if category not in cfg.TRADED_ASSET_CATEGORIES:
                raise StatementFormatError(f"Unsupported asset category: {category!r}", row)

            symbol = parse_symbol(row['Symbol'])
            symbol_to_mark_to_market[symbol.value] = MarkToMarket(
                start_quantity=clean_number(row['Prior Quantity']),
                end_quantity=clean_number(row['Current Quantity'])
            )

    return symbol_to_mark_to_market


# ==========================================
# SECTION 4: CASH MOVEMENTS
# ==========================================
def parse_forex(sections: List[pd.DataFrame]) -> List[Forex]:
    """
    Parses the Forex part of the 'Trades' table.

    A symbol such as 'EUR.USD' with a positive quantity buys EUR (the target) and
    pays USD (the source).
    """
    exchanges = []
    for section in sections:
        require_columns(section, ['Symbol', 'Date/Time', 'Quantity', 'T. Price', 'Proceeds', 'Comm in USD'],
                        cfg.SECTION_TRADES)
        for _, row in section.iterrows():
            if not is_data_row(row):
                continue
            currency_pair = row['Symbol'].split('.')
            if len(currency_pair) != 2:
                raise StatementFormatError(f"Malformed currency pair: {row['Symbol']!r}", row)
            base, quote = currency_pair

            exchanges.append(Forex(
                date_time=parse_date_time(row['Date/Time'], cfg.LOCAL_DATE_TIME_FORMAT),
                source_currency=quote,
                target_currency=base,
                quantity=clean_number(row['Quantity'], scale=False),
                price=clean_number(row['T. Price'], scale=False),
                proceeds=clean_number(row['Proceeds'], scale=False),
                commission=clean_number(row['Comm in USD'], scale=False)
            ))
    return exchanges


def _parse_transfers(sections: List[pd.DataFrame], date_column: str, section_name: str) -> List[tuple]:
    # Deposits and dividends share one layout; only the date column differs.
    transfers = []
    for section in sections:
        require_columns(section, ['Currency', date_column, 'Amount', 'Description'], section_name)
        for _, row in section.iterrows():
            if not is_data_row(row):
                continue
            currency = row['Currency']
            if currency.startswith('Total'):
                continue
            transfers.append((
                parse_date(row[date_column], cfg.LOCAL_DATE_FORMAT),
                currency,
                clean_number(row['Amount'], scale=False),
                row['Description']
            ))
    return transfers


def parse_deposits(sections: List[pd.DataFrame]) -> List[Deposit]:
    """Parses the 'Deposits & Withdrawals' tables (settled at the end of the business day)."""
    return [Deposit(*fields) for fields in _parse_transfers(sections, 'Settle Date', cfg.SECTION_DEPOSITS)]


def parse_dividends(sections: List[pd.DataFrame]) -> List[Dividend]:
    """Parses the 'Dividends' and 'Withholding Tax' tables."""
    return [Dividend(*fields) for fields in _parse_transfers(sections, 'Date', cfg.SECTION_DIVIDENDS)]
