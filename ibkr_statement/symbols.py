from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

from .config import PRECISION
from .errors import StatementFormatError
from .models import ParsedSymbol

OPTION_TYPES = {'C': 'CALL', 'P': 'PUT'}

_QUANTUM = Decimal(1).scaleb(-PRECISION)


def parse_symbol(raw: str) -> ParsedSymbol:
    """
    Parses a symbol as written in the activity statement.

    Plain instruments are a single token ('AAPL'). Options are written as
    'UNDERLYING EXPIRY STRIKE C|P', e.g. 'SQQQ 17JUN22 42.0 P', and normalised to
    'PUT SQQQ 17JUN22@42.0000' so that every row referencing the same contract maps
    to the same key.

    Args:
        raw (str): The Symbol cell.

    Returns:
        ParsedSymbol: The normalised symbol.

    Raises:
        StatementFormatError: If the symbol is empty or not a well-formed option.
    """
    tokens = str(raw).split()
    if len(tokens) <= 1:
        return ParsedSymbol(tokens[0] if tokens else '', '', Decimal('0'))
    if len(tokens) != 4:
        raise StatementFormatError(f"Unsupported symbol format: {raw!r}")

    underlying_asset, expiry, strike, option_type = tokens
    try:
        strike_price = Decimal(strike).quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as e:
        raise StatementFormatError(f"Invalid strike price in symbol: {raw!r}") from e
    if not strike_price.is_finite():
        raise StatementFormatError(f"Invalid strike price in symbol: {raw!r}")
    if option_type not in OPTION_TYPES:
        raise StatementFormatError(f"Unsupported option type in symbol: {raw!r}")

    value = f"{OPTION_TYPES[option_type]} {underlying_asset} {expiry}@{strike_price:f}"
    return ParsedSymbol(value, underlying_asset, strike_price)
