"""
IBKR Activity Statement Loader.

Entry point of the reader: loads a complete activity statement (CSV export) into an
immutable Statement. The file is read into memory in one go, cut into sections once,
and every section is decoded once before being handed to the parser of its category.

A parse either succeeds completely or raises:
- OSError (e.g. FileNotFoundError) if the file cannot be read.
- StatementFormatError if the content does not match the expected structure.
- PositionError if the trades cannot be reconciled into positions.
"""
import logging
from pathlib import Path
from typing import Callable, List, Union

import pandas as pd

from . import config as cfg
from .models import Statement
from .parsers import (
    parse_account,
    parse_cash_activities,
    parse_codes,
    parse_deposits,
    parse_dividends,
    parse_forex,
    parse_header,
    parse_mark_to_market
)
from .position_tracker import reconstruct_trades
from .sections import Row, decode_section, read_lines, select_sections, split_sections

log = logging.getLogger(__name__)


# ==========================================
# SECTION 1: CATEGORY PREDICATES
# ==========================================
# The first column of a table is named after the table, so a row belongs to a category
# when it has a column of that name.
def _in_section(*names: str) -> Callable[[Row], bool]:
    return lambda row: any(name in row for name in names)


def _is_trade(row: Row) -> bool:
    return cfg.SECTION_TRADES in row and row.get('Asset Category') != cfg.FOREX_CATEGORY


def _is_forex(row: Row) -> bool:
    return cfg.SECTION_TRADES in row and row.get('Asset Category') == cfg.FOREX_CATEGORY


# ==========================================
# SECTION 2: MAIN PART
# ==========================================
def load(filepath: Union[str, Path]) -> Statement:
    """
    Loads an activity statement.

    Args:
        filepath (Union[str, Path]): Path of the CSV file.

    Returns:
        Statement: The parsed statement.
    """
    log.info("Reading IBKR activity statement: %s", filepath)
    lines = read_lines(filepath)
    frames: List[pd.DataFrame] = [decode_section(text) for text in split_sections(lines)]

    def sections(predicate: Callable[[Row], bool]) -> List[pd.DataFrame]:
        return select_sections(frames, predicate)

    header = parse_header(sections(_in_section(cfg.SECTION_STATEMENT)))
    account = parse_account(sections(_in_section(cfg.SECTION_ACCOUNT)))
    cash_activities = parse_cash_activities(sections(_in_section(cfg.SECTION_CASH_REPORT)))
    token_to_codes = parse_codes(sections(_in_section(cfg.SECTION_CODES)))
    mark_to_market = parse_mark_to_market(sections(_in_section(cfg.SECTION_MARK_TO_MARKET)))
    trades = reconstruct_trades(sections(_is_trade), token_to_codes, mark_to_market)
    forex = parse_forex(sections(_is_forex))
    deposits = parse_deposits(sections(_in_section(cfg.SECTION_DEPOSITS)))
    dividends = parse_dividends(sections(_in_section(cfg.SECTION_DIVIDENDS, cfg.SECTION_WITHHOLDING_TAX)))

    statement = Statement(
        header=header,
        account=account,
        cash_activities=cash_activities,
        trades=trades,
        forex=forex,
        deposits=deposits,
        dividends=dividends,
        mark_to_market=mark_to_market
    )
    log.info("Loaded statement %s to %s for account %s: %d trades, %d forex, %d deposits, %d dividends",
             header.start_date, header.end_date, account.number,
             len(statement.trades), len(statement.forex), len(statement.deposits), len(statement.dividends))
    return statement
