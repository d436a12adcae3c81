from __future__ import annotations

from pathlib import Path
from typing import List

import pandas as pd

from cashlens_core.domain.models import TransactionInput


REQUIRED_COLUMNS = {"date", "description", "amount", "category"}
KIND_COLUMNS = ("kind", "type")
KINDS = {"income", "expense", "transfer"}


def _optional(value) -> str | None:
    if pd.isna(value):
        return None
    return str(value)


def load_ledger(csv_path: str | Path) -> List[TransactionInput]:
    """
    Read a transaction CSV with date, description, category, amount and a kind
    (or type) column; id, account and note are optional. Rows without an id are
    numbered from 1 in file order.
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(path)

    df = pd.read_csv(path)
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns in ledger CSV: {missing}")
    kind_column = next((c for c in KIND_COLUMNS if c in df.columns), None)
    if kind_column is None:
        raise ValueError("Ledger CSV needs a 'kind' or 'type' column")

    df["date"] = pd.to_datetime(df["date"]).dt.date
    df[kind_column] = df[kind_column].astype(str).str.strip().str.lower()
    unknown = set(df[kind_column]) - KINDS
    if unknown:
        raise ValueError(f"Unknown transaction kinds in ledger CSV: {sorted(unknown)}")

    transactions: List[TransactionInput] = []
    for position, row in enumerate(df.itertuples(index=False), start=1):
        record = row._asdict()
        raw_id = record.get("id")
        transactions.append(
            TransactionInput(
                id=position if raw_id is None or pd.isna(raw_id) else str(raw_id),
                date=record["date"],
                description=str(record["description"]),
                category=str(record["category"]),
                amount=float(record["amount"]),
                kind=record[kind_column],
                account=_optional(record.get("account")),
                note=_optional(record.get("note")),
            )
        )
    return transactions
