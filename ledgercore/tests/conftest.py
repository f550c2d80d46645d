"""
Shared statement fixtures.
"""
from decimal import Decimal

import pytest

from ..core.ledger import NormalizationContext, normalize_transactions
from ..models.schema import ParsedTransaction, RowSource


MANUAL_STATEMENT = """Transaction Summary
Account name Jane Citizen
BSB 062-000
Account number 1234 5678
Date Transaction details Amount Balance
02 Jan 2024 Salary ACME PTY LTD 2,000.00 3,000.00
03 Jan 2024
EFTPOS STORE 123
-45.00 2,955.00
05 Jan 2024 Transfer to savings NetBank -500.00 2,455.00
07 Jan 2024 WOOLWORTHS 1234 SYDNEY -120.50 2,334.50
09 Jan 2024 Interest earned 1.25 2,335.75
10 Jan 2024 Coffee shop -4.50 2,331.25
Any pending transactions haven't been included
"""

AUTO_STATEMENT = """Statement 3 (Page 1 of 1)
Account Number 06 2000 12345678
Period 1 Jan 2024 - 31 Jan 2024
Date Transaction Debit Credit Balance
01 Jan OPENING BALANCE $1,000.00 CR
02 Jan Card xx1234 WOOLWORTHS SYDNEY
Value Date: 01/01/2024 50.00 $950.00 CR
05 Jan Salary ACME PTY LTD
Credit to account 2,000.00 $2,950.00 CR
10 Jan Transfer to savings NetBank 500.00 $2,450.00 CR
15 Jan Direct Debit GYM CO 60.00 $2,390.00 CR
20 Jan Fast Transfer From J SMITH 400.00 $2,790.00 CR
25 Jan Account Fee 30.00 $2,760.00 CR
31 Jan CLOSING BALANCE $2,760.00 CR
"""


def make_row(row_index, date, amount, balance=None, description="Test row", raw_line=None, confidence=0.95):
    return ParsedTransaction(
        date=date,
        date_raw=date,
        description=description,
        amount=Decimal(amount),
        balance=Decimal(balance) if balance is not None else None,
        raw_line=raw_line or f"{date} {description} {amount} {balance or ''}".strip(),
        confidence=confidence,
        source=RowSource(row_index=row_index, line_index=row_index),
    )


def make_context(file_id="file-a.txt", account_id="062000-12345678"):
    return NormalizationContext(
        file_id=file_id,
        bank_id="commbank",
        account_id=account_id,
        template_id="commbank_manual_amount_balance",
    )


def make_transactions(rows, file_id="file-a.txt", warnings=()):
    return normalize_transactions(rows, list(warnings), make_context(file_id))


@pytest.fixture
def manual_statement():
    return MANUAL_STATEMENT


@pytest.fixture
def auto_statement():
    return AUTO_STATEMENT
