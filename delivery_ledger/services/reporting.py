"""
Reporting over the ledger entry log.

The functions in this module are pure: they take entries and
return derived figures, with no database access and no hidden
state. The same entries always give the same report, and every
report is sorted so output is stable across runs.

ReportingService is the database-facing side: it filters, orders
and pages entries in SQL and hands them to the functions below.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from delivery_ledger.config import get_settings
from delivery_ledger.models.enums import AccountType, ActorType, Direction, EntryType
from delivery_ledger.models.ledger_entry import LedgerEntry
from delivery_ledger.money import Money

BREAKDOWN_FIELDS = ("entry_type", "account_type", "category", "subcategory")


@dataclass(frozen=True)
class AccountTotals:
    account_type: AccountType
    account_id: str
    total_in: Money
    total_out: Money
    entry_count: int

    @property
    def net(self) -> Money:
        return self.total_in - self.total_out


@dataclass(frozen=True)
class BreakdownRow:
    key: str | None
    total_in: Money
    total_out: Money
    entry_count: int

    @property
    def net(self) -> Money:
        return self.total_in - self.total_out


@dataclass(frozen=True)
class CashboxSummary:
    cash: Money
    wish: Money
    capital: Money
    lbp_per_usd: Decimal

    @property
    def total(self) -> Money:
        return self.cash + self.wish

    @property
    def usd_equivalent(self) -> Decimal:
        """Total holdings expressed in USD at the configured rate."""
        lbp_in_usd = Decimal(self.total.lbp) / self.lbp_per_usd
        return (self.total.usd + lbp_in_usd).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )


def _sort_key(entry):
    return (entry.created_at or datetime.min, entry.id or 0)


def naive_utc(moment: datetime | None) -> datetime | None:
    """
    Bring a query bound into the form entries are stored in.

    created_at is naive UTC, so an aware bound is converted to UTC
    and its tzinfo dropped. Naive bounds are taken as UTC already.
    """
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def filter_entries(
    entries: Iterable,
    start: datetime | None = None,
    end: datetime | None = None,
    actor_type: ActorType | None = None,
    actor_id: str | None = None,
    account_type: AccountType | None = None,
    account_id: str | None = None,
    entry_type: EntryType | None = None,
    order_id: int | None = None,
) -> list:
    """
    Select entries matching every given criterion, oldest first.

    start is inclusive and end is exclusive, so consecutive
    periods never count an entry twice.
    """
    start, end = naive_utc(start), naive_utc(end)
    selected = []
    for entry in entries:
        if start is not None and entry.created_at < start:
            continue
        if end is not None and entry.created_at >= end:
            continue
        if actor_type is not None and entry.actor_type != actor_type:
            continue
        if actor_id is not None and entry.actor_id != str(actor_id):
            continue
        if account_type is not None and entry.account_type != account_type:
            continue
        if account_id is not None and entry.account_key != str(account_id):
            continue
        if entry_type is not None and entry.entry_type != entry_type:
            continue
        if order_id is not None and entry.order_id != order_id:
            continue
        selected.append(entry)
    return sorted(selected, key=_sort_key)


def account_totals(entries: Iterable) -> list[AccountTotals]:
    """Per-account sums of IN and OUT entries, sorted by account."""
    sums = defaultdict(lambda: [Money.zero(), Money.zero(), 0])
    for entry in entries:
        row = sums[(entry.account_type, entry.account_key)]
        if entry.direction == Direction.IN:
            row[0] = row[0] + entry.amount
        else:
            row[1] = row[1] + entry.amount
        row[2] += 1

    return [
        AccountTotals(account_type, account_id, total_in, total_out, count)
        for (account_type, account_id), (total_in, total_out, count) in sorted(
            sums.items(), key=lambda item: (item[0][0].value, item[0][1])
        )
    ]


def compute_balances(entries: Iterable) -> dict[tuple[AccountType, str], Money]:
    """Balance of every account, recomputed from nothing but its entries."""
    return {
        (totals.account_type, totals.account_id): totals.net
        for totals in account_totals(entries)
    }


def breakdown(entries: Iterable, by: str = "entry_type") -> list[BreakdownRow]:
    """
    Group entries by one field and total each group.

    by is one of entry_type, account_type, category or
    subcategory. Entries without a category are grouped under
    None, which sorts first.
    """
    if by not in BREAKDOWN_FIELDS:
        raise ValueError(f"Cannot break down by '{by}'")

    groups = defaultdict(lambda: [Money.zero(), Money.zero(), 0])
    for entry in entries:
        value = getattr(entry, by)
        key = value.value if hasattr(value, "value") else value
        row = groups[key]
        if entry.direction == Direction.IN:
            row[0] = row[0] + entry.amount
        else:
            row[1] = row[1] + entry.amount
        row[2] += 1

    return [
        BreakdownRow(key, total_in, total_out, count)
        for key, (total_in, total_out, count) in sorted(
            groups.items(), key=lambda item: (item[0] is not None, item[0] or "")
        )
    ]


def cashbox_summary(
    balances: dict[tuple[AccountType, str], Money],
    cashbox_name: str,
    lbp_per_usd: Decimal,
    capital: Money | None = None,
) -> CashboxSummary:
    return CashboxSummary(
        cash=balances.get((AccountType.CASH, cashbox_name), Money.zero()),
        wish=balances.get((AccountType.WISH, cashbox_name), Money.zero()),
        capital=capital or Money.zero(),
        lbp_per_usd=Decimal(lbp_per_usd),
    )


class ReportingService:
    """Queries entries for the pure report functions above."""

    def __init__(self, db: Session, store=None, lbp_per_usd: Decimal | None = None):
        from delivery_ledger.services.account_store import AccountStore

        self.db = db
        self.store = store or AccountStore(db)
        self.lbp_per_usd = lbp_per_usd or get_settings().LBP_PER_USD

    def _select(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        actor_type: ActorType | None = None,
        actor_id: str | None = None,
        account_type: AccountType | None = None,
        account_id: str | None = None,
        entry_type: EntryType | None = None,
        order_id: int | None = None,
    ) -> Select:
        """The same criteria as filter_entries, as a SQL query."""
        stmt = select(LedgerEntry)
        start, end = naive_utc(start), naive_utc(end)
        if start is not None:
            stmt = stmt.where(LedgerEntry.created_at >= start)
        if end is not None:
            stmt = stmt.where(LedgerEntry.created_at < end)
        if actor_type is not None:
            stmt = stmt.where(LedgerEntry.actor_type == actor_type)
        if actor_id is not None:
            stmt = stmt.where(LedgerEntry.actor_id == str(actor_id))
        if account_type is not None:
            stmt = stmt.where(LedgerEntry.account_type == account_type)
        if account_id is not None:
            stmt = stmt.where(LedgerEntry.account_key == str(account_id))
        if entry_type is not None:
            stmt = stmt.where(LedgerEntry.entry_type == entry_type)
        if order_id is not None:
            stmt = stmt.where(LedgerEntry.order_id == order_id)
        return stmt

    def entries(self, **filters) -> list[LedgerEntry]:
        """Matching entries, oldest first."""
        stmt = self._select(**filters).order_by(
            LedgerEntry.created_at.asc(), LedgerEntry.id.asc()
        )
        return list(self.db.execute(stmt).scalars().all())

    def timeline(
        self, limit: int = 50, offset: int = 0, **filters
    ) -> list[LedgerEntry]:
        """Entries newest first, for the cashbox timeline."""
        stmt = (
            self._select(**filters)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(stmt).scalars().all())

    def account_report(self, **filters) -> list[AccountTotals]:
        return account_totals(self.entries(**filters))

    def cashbox_report(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, list[BreakdownRow]]:
        """Cashbox movements for a period, broken down every way."""
        stmt = self._select(start=start, end=end).where(
            LedgerEntry.account_key == self.store.cashbox_name,
            LedgerEntry.account_type.in_((AccountType.CASH, AccountType.WISH)),
        )
        entries = self.db.execute(stmt).scalars().all()
        return {field: breakdown(entries, by=field) for field in BREAKDOWN_FIELDS}

    def summary(self) -> CashboxSummary:
        cashbox = self.store.get_cashbox()
        balances = {
            (AccountType.CASH, cashbox.name): self.store.get_balance(AccountType.CASH),
            (AccountType.WISH, cashbox.name): self.store.get_balance(AccountType.WISH),
        }
        return cashbox_summary(
            balances, cashbox.name, self.lbp_per_usd, capital=cashbox.capital
        )

    def reconciliation(self) -> list[dict]:
        return self.store.reconcile()
