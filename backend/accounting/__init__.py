# accounting/__init__.py
"""
Accounting app - sub-account ledger for accounting lines.

This app provides:
- AccountingEntry: dated journal entries
- SubAccount: ledger accounts carrying a running balance
- SubAccountMonthlyBalance: per-month movement of each sub-account
- AccountingLine: debit/credit lines posted against a sub-account

All line mutations go through accounting.ledger so that every insert,
amount change and delete moves the referenced sub-account's balance in the
same transaction.
"""
