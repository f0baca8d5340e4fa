"""
Activity Statement Reader Entry Point.

Loads an Interactive Brokers activity statement (CSV export), prints a summary of
its contents and the positions reconstructed from its trades, and optionally writes
the chronological event log to a CSV file.

Usage:
    python main.py <statement.csv> [--events OUT.csv] [--verbose]
"""
import argparse
import logging
import sys
from typing import List, Optional

import pandas as pd

# --- Custom Module Imports ---
# dl: Parses the raw activity statement.
# el: Builds tabular views of a parsed statement.
from ibkr_statement import data_loader as dl
from ibkr_statement import event_log as el
from ibkr_statement.errors import StatementError
from ibkr_statement.models import Statement


def _print_section_header(title: str) -> None:
    print("\n" + "=" * 60)
    print(f" {title}")
    print("=" * 60 + "\n")


def print_summary(statement: Statement) -> None:
    """
    Displays the period, account, collection sizes and open positions of a statement.

    Args:
        statement (Statement): The parsed statement.
    """
    _print_section_header("ACTIVITY STATEMENT")
    header = statement.header
    print(f"     - Period: {header.start_date} to {header.end_date} (generated {header.generated_at})")
    print(f"     - Account: {statement.account.number} ({statement.account.owner})")
    for currency, activity in statement.cash_activities.items():
        print(f"     - Cash {currency}: {activity.opening_balance} -> {activity.closing_balance}")
    print(f"     - Trades: {len(statement.trades)}")
    print(f"     - Forex Conversions: {len(statement.forex)}")
    print(f"     - Deposits & Withdrawals: {len(statement.deposits)}")
    print(f"     - Dividends & Withholding Tax: {len(statement.dividends)}")

    df_positions = el.summarise_positions(statement)
    df_open = df_positions[df_positions['net_quantity'] != 0]

    _print_section_header("OPEN POSITIONS")
    if df_open.empty:
        print(" [+] No open positions.")
    else:
        with pd.option_context('display.width', 120):
            print(df_open.to_string(index=False))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Read an Interactive Brokers activity statement.")
    parser.add_argument('statement', help="path of the CSV activity statement")
    parser.add_argument('--events', metavar='OUT.csv', help="write the event log to this CSV file")
    parser.add_argument('--verbose', action='store_true', help="log every parsed trade row")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    print(f"\n [>] Reading IBKR activity statement: {args.statement}...")
    try:
        statement = dl.load(args.statement)
    except OSError as e:
        print(f" [!] Error: Cannot read '{args.statement}': {e}")
        return 1
    except StatementError as e:
        print(f" [!] Error: '{args.statement}' is not a valid activity statement: {e}")
        return 1
    print(" [+] Statement loaded successfully.")

    print_summary(statement)

    if args.events:
        df_event_log = el.build_event_log(statement)
        df_event_log.to_csv(args.events, index=False)
        print(f"\n [+] Wrote {len(df_event_log)} events to {args.events}")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n [!] Interrupted by user. Exiting.")
        sys.exit(1)
