import csv
from io import StringIO
from typing import Sequence

from models import Transaction

EXPORT_HEADER = ["Date", "Type", "Category", "Amount", "Description"]

FORMULA_TRIGGERS = ("=", "+", "-", "@", "\t", "\r")


def sanitize_csv_value(value: str) -> str:
    """
    Neutralize spreadsheet formula injection by prefixing trigger characters with a tab.

    Quoting of commas, quotes and newlines is left to ``csv.writer``.
    """
    if not value:
        return ""
    if value.startswith(FORMULA_TRIGGERS):
        return "\t" + value
    return value


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL)
    writer.writerow(EXPORT_HEADER)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                txn.type.value,
                sanitize_csv_value(txn.category.name if txn.category else ""),
                f"{txn.amount:.2f}",
                sanitize_csv_value(txn.description or ""),
            ]
        )
    return output.getvalue()
