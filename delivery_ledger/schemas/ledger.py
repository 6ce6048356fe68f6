"""
Pydantic schemas for ledger entries, postings and balances.

These define the API contract. Amounts go out as two fields,
USD as a decimal string and LBP as an integer.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from delivery_ledger.models.enums import (
    AccountType,
    ActorType,
    Direction,
    EntryType,
    TransactionType,
)


class LedgerEntryResponse(BaseModel):
    """Single entry in API responses."""
    id: int
    transaction_id: int
    account_type: AccountType
    account_key: str
    entry_type: EntryType
    direction: Direction
    amount_usd: Decimal
    amount_lbp: int
    actor_type: ActorType
    actor_id: str | None
    order_id: int | None
    category: str | None
    subcategory: str | None
    description: str
    created_by: int
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    tx_type: TransactionType
    order_id: int | None
    description: str
    created_by: int
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """Balance of one account."""
    account_type: AccountType
    account_id: str
    balance_usd: Decimal
    balance_lbp: int


class PostingResponse(BaseModel):
    """
    What a ledger operation wrote.

    transaction is null when the operation had nothing to post,
    for example a capital edit to the current amount.
    """
    transaction: TransactionResponse | None
    entries: list[LedgerEntryResponse]
    balances: list[BalanceResponse]

    @classmethod
    def from_result(cls, result) -> "PostingResponse":
        return cls(
            transaction=(
                TransactionResponse.model_validate(result.transaction)
                if result.transaction is not None else None
            ),
            entries=[LedgerEntryResponse.model_validate(e) for e in result.entries],
            balances=[
                BalanceResponse(
                    account_type=account_type,
                    account_id=account_id,
                    balance_usd=balance.usd,
                    balance_lbp=balance.lbp,
                )
                for (account_type, account_id), balance in sorted(
                    result.balances.items(), key=lambda item: (item[0][0].value, item[0][1])
                )
            ],
        )
