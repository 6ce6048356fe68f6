"""
Account store: balances for every cashbox, client, driver and
third-party account.

The store is bound to one named cashbox; callers pass the name
in rather than relying on a global row. Balances are changed
only through apply_delta, which the LedgerEngine calls in the
same transaction as it inserts the matching entries. Rows are
locked with SELECT ... FOR UPDATE before they are changed, so
two concurrent payments against the same client or the same
cashbox are serialised by the database.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from delivery_ledger.config import get_settings
from delivery_ledger.exceptions import UnknownAccount
from delivery_ledger.models.account import Account
from delivery_ledger.models.cashbox import Cashbox
from delivery_ledger.models.enums import AccountType, CASHBOX_ACCOUNT_TYPES
from delivery_ledger.models.ledger_entry import LedgerEntry
from delivery_ledger.money import Money
from delivery_ledger.services.reporting import compute_balances

logger = logging.getLogger(__name__)


class AccountStore:

    def __init__(self, db: Session, cashbox_name: str | None = None):
        self.db = db
        self.cashbox_name = cashbox_name or get_settings().CASHBOX_NAME

    def account_key(self, account_type: AccountType, account_id=None) -> str:
        """
        Normalise an account identity.

        Cash and wish accounts belong to the bound cashbox, so
        their key is always the cashbox name.
        """
        if account_type in CASHBOX_ACCOUNT_TYPES:
            return self.cashbox_name
        if account_id is None or str(account_id).strip() == "":
            raise UnknownAccount(
                f"An id is required for {account_type.value} accounts"
            )
        return str(account_id).strip()

    # --- Cashbox ---

    def get_cashbox(self, lock: bool = False) -> Cashbox:
        """Return the bound cashbox, creating it on first use."""
        stmt = select(Cashbox).where(Cashbox.name == self.cashbox_name)
        if lock:
            stmt = stmt.with_for_update()
        cashbox = self.db.execute(stmt).scalar_one_or_none()

        if not cashbox:
            cashbox = Cashbox(
                name=self.cashbox_name,
                cash_balance_usd=Decimal("0.00"),
                cash_balance_lbp=0,
                wish_balance_usd=Decimal("0.00"),
                wish_balance_lbp=0,
                initial_capital_usd=Decimal("0.00"),
                initial_capital_lbp=0,
            )
            self.db.add(cashbox)
            self.db.flush()
            logger.info("Opened cashbox %s", self.cashbox_name)

        return cashbox

    # --- Accounts ---

    def find_account(
        self, account_type: AccountType, account_id=None, lock: bool = False
    ) -> Account | None:
        stmt = select(Account).where(
            Account.account_type == account_type,
            Account.account_key == self.account_key(account_type, account_id),
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_account(self, account_type: AccountType, account_id=None) -> Account:
        account = self.find_account(account_type, account_id)
        if not account:
            raise UnknownAccount(
                f"No {account_type.value} account "
                f"'{self.account_key(account_type, account_id)}'"
            )
        return account

    def get_or_create_account(
        self, account_type: AccountType, account_id=None
    ) -> Account:
        """Return the locked account row, creating it with a zero balance."""
        account = self.find_account(account_type, account_id, lock=True)
        if not account:
            account = Account(
                account_type=account_type,
                account_key=self.account_key(account_type, account_id),
                balance_usd=Decimal("0.00"),
                balance_lbp=0,
            )
            self.db.add(account)
            self.db.flush()
        return account

    def get_balance(self, account_type: AccountType, account_id=None) -> Money:
        """
        Current balance of an account.

        Cash and wish balances always exist (they start at zero);
        any other account must have had at least one posting.
        """
        if account_type in CASHBOX_ACCOUNT_TYPES:
            account = self.find_account(account_type)
            return account.balance if account else Money.zero()
        return self.get_account(account_type, account_id).balance

    def apply_delta(
        self, account_type: AccountType, account_id, delta: Money
    ) -> Account:
        """
        Move an account's balance by delta.

        Only the LedgerEntry insert that justifies the delta may
        call this; the caller is the LedgerEngine. Cashbox
        accounts also move the cached balance on the cashbox row.
        """
        account = self.get_or_create_account(account_type, account_id)
        account.balance_usd = Decimal(account.balance_usd) + delta.usd
        account.balance_lbp = int(account.balance_lbp) + delta.lbp

        if account_type in CASHBOX_ACCOUNT_TYPES:
            cashbox = self.get_cashbox(lock=True)
            cashbox.apply(account_type, delta)

        self.db.flush()
        return account

    def list_accounts(self, account_type: AccountType | None = None) -> list[Account]:
        stmt = select(Account).order_by(Account.account_type, Account.account_key)
        if account_type is not None:
            stmt = stmt.where(Account.account_type == account_type)
        return list(self.db.execute(stmt).scalars().all())

    # --- Reconciliation ---

    def reconcile(self) -> list[dict]:
        """
        Recompute every balance from the entry log.

        Returns one item per discrepancy: stored account balances
        that differ from the sum of their entries, and cashbox
        cache values that differ from their accounts. An empty list
        means the store is consistent.
        """
        entries = self.db.execute(select(LedgerEntry)).scalars().all()
        expected = compute_balances(entries)

        mismatches = []
        seen = set()
        for account in self.list_accounts():
            key = (account.account_type, account.account_key)
            seen.add(key)
            recomputed = expected.get(key, Money.zero())
            if account.balance != recomputed:
                mismatches.append({
                    "account_type": account.account_type,
                    "account_id": account.account_key,
                    "stored": account.balance,
                    "recomputed": recomputed,
                })

        for key, recomputed in expected.items():
            if key not in seen:
                mismatches.append({
                    "account_type": key[0],
                    "account_id": key[1],
                    "stored": None,
                    "recomputed": recomputed,
                })

        cashbox = self.db.execute(
            select(Cashbox).where(Cashbox.name == self.cashbox_name)
        ).scalar_one_or_none()
        if cashbox:
            for account_type, cached in (
                (AccountType.CASH, cashbox.cash_balance),
                (AccountType.WISH, cashbox.wish_balance),
            ):
                actual = self.get_balance(account_type)
                if cached != actual:
                    mismatches.append({
                        "account_type": account_type,
                        "account_id": f"cashbox:{self.cashbox_name}",
                        "stored": cached,
                        "recomputed": actual,
                    })

        if mismatches:
            logger.warning("Reconciliation found %d mismatches", len(mismatches))
        return mismatches
