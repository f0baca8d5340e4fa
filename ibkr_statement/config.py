# ==========================================
# 0. NUMERIC PRECISION
# ==========================================

# Fractional digits kept for quantities, prices and amounts (half-even rounding)
PRECISION = 4

# ==========================================
# 1. DATE & TIME FORMATS
# ==========================================

HEADER_DATE_FORMAT = '%B %d, %Y'                # e.g. January 31, 2024
HEADER_DATE_TIME_FORMAT = '%Y-%m-%d, %H:%M:%S'  # e.g. 2024-02-01, 09:00:00 (zone suffix stripped)
LOCAL_DATE_FORMAT = '%Y-%m-%d'
LOCAL_DATE_TIME_FORMAT = '%Y-%m-%d, %H:%M:%S'

PERIOD_SEPARATOR = ' - '

# ==========================================
# 2. SECTION NAMES
# ==========================================

# The first column of every row holds the name of the table it belongs to.
SECTION_STATEMENT = 'Statement'
SECTION_ACCOUNT = 'Account Information'
SECTION_CASH_REPORT = 'Cash Report'
SECTION_CODES = 'Codes'
SECTION_MARK_TO_MARKET = 'Mark-to-Market Performance Summary'
SECTION_TRADES = 'Trades'
SECTION_DEPOSITS = 'Deposits & Withdrawals'
SECTION_DIVIDENDS = 'Dividends'
SECTION_WITHHOLDING_TAX = 'Withholding Tax'

# Token in the second column that opens a (possibly repeated) table header
HEADER_MARKER = 'Header'
DATA_MARKER = 'Data'
AGGREGATE_MARKERS = frozenset({'SubTotal', 'Total'})

# ==========================================
# 3. KNOWN FIELDS
# ==========================================

STATEMENT_TITLE = 'Activity Statement'

HEADER_IGNORED_FIELDS = frozenset({'BrokerName', 'BrokerAddress'})

ACCOUNT_IGNORED_FIELDS = frozenset({
    'Account Type',
    'Customer Type',
    'Account Capabilities',
    'Base Currency'
})

# Cash Report rows duplicated under each named currency
BASE_CURRENCY_SUMMARY = 'Base Currency Summary'

CASH_OPENING_SUMMARY = 'Starting Cash'
CASH_CLOSING_SUMMARY = 'Ending Cash'
CASH_IGNORED_SUMMARIES = frozenset({
    'Ending Settled Cash',
    'Deposits',
    'Trades (Sales)',
    'Trades (Purchase)',
    'Commissions',
    'Dividends',
    'Payment In Lieu of Dividends',
    'Withholding Tax',
    'Account Transfers',
    'Broker Interest Paid and Received'
})

# ==========================================
# 4. ASSET CATEGORIES
# ==========================================

FOREX_CATEGORY = 'Forex'

TRADED_ASSET_CATEGORIES = frozenset({'Stocks', 'Equity and Index Options'})

MARK_TO_MARKET_SKIPPED_CATEGORIES = frozenset({
    'Total',
    'Forex',
    'Total (All Assets)',
    'Broker Interest Paid and Received'
})

# ==========================================
# 5. TRADE CODES
# ==========================================

CODE_SEPARATOR = ';'

# Meaning text of the Codes table -> names of the matching models.Code members.
# Meanings missing from this table map to no code at all.
CODE_MEANINGS = {
    'Assignment': ('ASSIGNMENT',),
    'Resulted from an Expired Position': ('EXPIRED',),
    'Opening Trade': ('OPEN',),
    'Closing Trade': ('CLOSE',),
    'Partial Execution': ('PARTIAL_EXECUTION',),
    'The transaction was executed against IB or an affiliate': ('INTERNAL_TRADE',),
    'A portion of the order was executed against IB or an affiliate; IB acted as agent on a portion.': (
        'PARTIAL_EXECUTION', 'INTERNAL_TRADE'),
    'The fractional portion of this trade was executed against IB or an affiliate. IB acted as agent '
    'for the whole share portion of this trade.': ('FRACTIONAL_PORTION_TRADED_INTERNALLY',),
    'IB acted as agent for both the fractional share portion and the whole share portion of this trade; '
    'the fractional share portion was executed by an IB Affiliate as riskless principal.': ('INTERNAL_TRADE',),
    'Ordered by IB (Margin Violation)': ('MARGIN_VIOLATION',),
}
