"""
Pydantic schemas for reports.
"""

from decimal import Decimal

from pydantic import BaseModel

from delivery_ledger.models.enums import AccountType


class AccountTotalsResponse(BaseModel):
    account_type: AccountType
    account_id: str
    in_usd: Decimal
    in_lbp: int
    out_usd: Decimal
    out_lbp: int
    net_usd: Decimal
    net_lbp: int
    entry_count: int

    @classmethod
    def from_totals(cls, totals) -> "AccountTotalsResponse":
        return cls(
            account_type=totals.account_type,
            account_id=totals.account_id,
            in_usd=totals.total_in.usd,
            in_lbp=totals.total_in.lbp,
            out_usd=totals.total_out.usd,
            out_lbp=totals.total_out.lbp,
            net_usd=totals.net.usd,
            net_lbp=totals.net.lbp,
            entry_count=totals.entry_count,
        )


class BreakdownRowResponse(BaseModel):
    key: str | None
    in_usd: Decimal
    in_lbp: int
    out_usd: Decimal
    out_lbp: int
    entry_count: int

    @classmethod
    def from_row(cls, row) -> "BreakdownRowResponse":
        return cls(
            key=row.key,
            in_usd=row.total_in.usd,
            in_lbp=row.total_in.lbp,
            out_usd=row.total_out.usd,
            out_lbp=row.total_out.lbp,
            entry_count=row.entry_count,
        )


class CashboxReportResponse(BaseModel):
    """Cashbox movements broken down by entry type, account and category."""
    entry_type: list[BreakdownRowResponse]
    account_type: list[BreakdownRowResponse]
    category: list[BreakdownRowResponse]
    subcategory: list[BreakdownRowResponse]


class MismatchResponse(BaseModel):
    account_type: AccountType
    account_id: str
    stored_usd: Decimal | None
    stored_lbp: int | None
    recomputed_usd: Decimal
    recomputed_lbp: int

    @classmethod
    def from_mismatch(cls, item: dict) -> "MismatchResponse":
        stored = item["stored"]
        return cls(
            account_type=item["account_type"],
            account_id=item["account_id"],
            stored_usd=stored.usd if stored is not None else None,
            stored_lbp=stored.lbp if stored is not None else None,
            recomputed_usd=item["recomputed"].usd,
            recomputed_lbp=item["recomputed"].lbp,
        )


class ReconciliationResponse(BaseModel):
    consistent: bool
    mismatches: list[MismatchResponse]
