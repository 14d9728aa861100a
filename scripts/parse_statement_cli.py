#!/usr/bin/env python3
"""
CLI script to check how a statement file is parsed, without importing it.

Usage:
    python scripts/parse_statement_cli.py <filename> [--limit N]

Examples:
    python scripts/parse_statement_cli.py statements/ithmaar_feb.xlsx
    python scripts/parse_statement_cli.py statements/ithmaar_feb.xlsx --all
"""
import argparse
import sys
from pathlib import Path

from bank_ledger.exceptions import BankLedgerError
from bank_ledger.services.statement_parsers import parse_statement


def main():
    parser = argparse.ArgumentParser(
        description="Parse a bank statement file and print its header and transactions."
    )
    parser.add_argument("filename", help="Path to the statement file to parse")
    parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help="Maximum number of transactions to display (default: 10)"
    )
    parser.add_argument(
        "--all", "-a",
        action="store_true",
        help="Show all transactions (ignore limit)"
    )

    args = parser.parse_args()

    filepath = Path(args.filename)
    if not filepath.exists():
        print(f"Error: File not found: {filepath}", file=sys.stderr)
        sys.exit(1)

    try:
        statement = parse_statement(filepath.read_bytes(), filepath.name)
    except BankLedgerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    transactions = statement.transactions
    print(f"Bank: {statement.bank_name}")
    print(f"Account holder: {statement.account_holder or '-'}")
    print(f"IBAN: {statement.iban or '-'}  Currency: {statement.currency or '-'}")
    print(f"Period: {statement.period_from} to {statement.period_to}")
    print(f"Opening balance: {statement.opening_balance}  Closing balance: {statement.closing_balance}")
    print(f"Total transactions: {len(transactions)}")
    print("-" * 80)

    display_count = len(transactions) if args.all else min(args.limit, len(transactions))

    for i, tx in enumerate(transactions[:display_count]):
        print(f"\n[{i + 1}] {tx.transaction_date} | {tx.amount:>12} {tx.transaction_type}")
        print(f"    Description: {tx.description[:60]}")
        if tx.reference:
            print(f"    Reference: {tx.reference}")
        if tx.balance is not None:
            print(f"    Balance: {tx.balance}")

    if not args.all and len(transactions) > args.limit:
        print(f"\n... and {len(transactions) - args.limit} more transactions (use --all to see all)")

    for warning in statement.warnings:
        print(f"Warning: {warning}", file=sys.stderr)


if __name__ == "__main__":
    main()
