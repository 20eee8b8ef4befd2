"""
TransactionService -- invoices and payments.

Responsibility:
    Create, update, list and delete ledger transactions, converting each
    amount into the base currency once, at write time, with the exchange
    rate locked on the row.

Architecture position:
    Kernel > Services.  Reads go through TransactionSelector; deletes go
    through TrashService.

Invariants enforced (each with a typed error before the flush):
    - amount > 0 and amount_in_base = round2(amount * exchange_rate) > 0.
    - currency is one of the configured currencies; the base currency
      always carries rate 1, any other currency a rate > 0.
    - scope/reference rule: project rows name a project, cari rows name a
      company and no project, company rows name no project.
    - referenced company and project exist and are active.
    - the category's type is the transaction type's category group.
    - an update never leaves a transaction's base amount below what is
      already allocated against it, and never changes the type of a
      transaction that has allocations.

Failure modes:
    - ValidationError subclasses for malformed values.
    - ConstraintViolation subclasses for cross-entity rule breaches.
    - NotFoundError for unknown transaction, company, project or category.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select

from ledger_config.settings import LedgerSettings
from ledger_kernel.db.types import ZERO, round_money, round_rate, to_decimal
from ledger_kernel.domain.dtos import TransactionFilters, TransactionInfo, TrashEntryInfo
from ledger_kernel.domain.transaction_types import TransactionType, traits_of
from ledger_kernel.exceptions import (
    AllocationTypeMismatchError,
    CategoryTypeMismatchError,
    InactiveReferenceError,
    InvalidAmountError,
    InvalidExchangeRateError,
    NotFoundError,
    OverAllocationError,
    ScopeReferenceError,
    UnsupportedCurrencyError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.allocation import PaymentAllocation
from ledger_kernel.models.category import Category
from ledger_kernel.models.company import Company
from ledger_kernel.models.project import Project
from ledger_kernel.models.transaction import Transaction, TransactionScope
from ledger_kernel.selectors.allocation_selector import AllocationSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.trash_service import TrashService

logger = get_logger("services.transaction")

ONE = Decimal("1.0000")

UPDATABLE_FIELDS = frozenset(
    {
        "scope",
        "company_id",
        "project_id",
        "type",
        "category_id",
        "date",
        "description",
        "amount",
        "currency",
        "exchange_rate",
        "document_no",
        "notes",
    }
)
_OPTIONAL_FIELDS = frozenset({"company_id", "project_id", "category_id", "document_no", "notes"})


class TransactionService(BaseService[Transaction]):
    """All public methods return TransactionInfo DTOs."""

    model = Transaction
    entity_name = "transaction"

    def __init__(self, session, clock=None, settings: LedgerSettings | None = None):
        super().__init__(session, clock)
        self.settings = settings or LedgerSettings()

    def get(self, transaction_id: int) -> TransactionInfo:
        """
        Get a transaction by id with names and its allocated sum.

        Raises:
            NotFoundError: If the transaction doesn't exist.
        """
        return TransactionSelector(self.session).get(transaction_id)

    def list(self, filters: TransactionFilters | None = None) -> list[TransactionInfo]:
        return TransactionSelector(self.session).list(filters)

    # -- validation ---------------------------------------------------------

    def _check_scope(self, scope: str, company_id: int | None, project_id: int | None) -> None:
        if scope not in TransactionScope.ALL:
            raise ValidationError(
                f"scope must be one of {', '.join(TransactionScope.ALL)}", field="scope"
            )
        if scope == TransactionScope.PROJECT and project_id is None:
            raise ScopeReferenceError(scope, "a project transaction requires a project")
        if scope == TransactionScope.CARI:
            if company_id is None:
                raise ScopeReferenceError(scope, "a cari transaction requires a company")
            if project_id is not None:
                raise ScopeReferenceError(scope, "a cari transaction cannot name a project")
        if scope == TransactionScope.COMPANY and project_id is not None:
            raise ScopeReferenceError(scope, "a company transaction cannot name a project")

    def _check_active(self, model: type, entity_type: str, entity_id: int | None) -> None:
        if entity_id is None:
            return
        entity = self.session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(entity_type, entity_id)
        if not entity.is_active:
            raise InactiveReferenceError(entity_type)

    def _check_category(self, tx_type: str, category_id: int | None) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if category is None:
            raise NotFoundError("category", category_id)
        expected = traits_of(tx_type).category_group.value
        if category.type != expected:
            raise CategoryTypeMismatchError(category.type, expected)

    def _amount(self, value: Any) -> Decimal:
        if value is None:
            raise InvalidAmountError(value)
        try:
            amount = round_money(to_decimal(value))
        except (TypeError, ArithmeticError):
            raise InvalidAmountError(value) from None
        if amount <= ZERO:
            raise InvalidAmountError(value)
        return amount

    def _rate(self, currency: str, rate: Any) -> Decimal:
        if currency not in self.settings.currencies:
            raise UnsupportedCurrencyError(currency, self.settings.currencies)
        if self.settings.is_base(currency):
            return ONE
        if rate is None:
            raise InvalidExchangeRateError(rate)
        try:
            locked = round_rate(to_decimal(rate))
        except (TypeError, ArithmeticError):
            raise InvalidExchangeRateError(rate) from None
        if locked <= ZERO:
            raise InvalidExchangeRateError(rate)
        return locked

    def _validate(self, values: dict[str, Any]) -> dict[str, Any]:
        """Check a complete field set and fill in the derived columns."""
        values["type"] = self._enum_value(TransactionType, values.get("type"), "type")
        self._check_scope(values["scope"], values.get("company_id"), values.get("project_id"))
        if not isinstance(values.get("date"), date):
            raise ValidationError("date is required", field="date")
        description = (values.get("description") or "").strip()
        if not description:
            raise ValidationError("description is required", field="description")
        values["description"] = description

        values["amount"] = self._amount(values.get("amount"))
        values["currency"] = (values.get("currency") or self.settings.base_currency).upper()
        values["exchange_rate"] = self._rate(values["currency"], values.get("exchange_rate"))
        values["amount_in_base"] = round_money(values["amount"] * values["exchange_rate"])
        if values["amount_in_base"] <= ZERO:
            raise InvalidAmountError(values["amount_in_base"], field="amount_in_base")

        self._check_active(Company, "company", values.get("company_id"))
        self._check_active(Project, "project", values.get("project_id"))
        self._check_category(values["type"], values.get("category_id"))
        return values

    # -- mutations ----------------------------------------------------------

    def create(
        self,
        scope: str,
        type: str,
        date: date,
        description: str,
        amount: Decimal,
        currency: str | None = None,
        exchange_rate: Decimal | None = None,
        **fields,
    ) -> TransactionInfo:
        """
        Record an invoice or payment.

        Args:
            scope: ``cari``, ``project`` or ``company``.
            type: One of TransactionType.
            date: Document date.
            description: Free text, required.
            amount: Amount in ``currency``.
            currency: Defaults to the base currency.
            exchange_rate: Required for a non-base currency; ignored (1) for
                the base currency.
            **fields: company_id, project_id, category_id, document_no, notes.
        """
        self._reject_unknown_fields(fields, _OPTIONAL_FIELDS)
        values = self._validate(
            {
                "scope": scope,
                "type": type,
                "date": date,
                "description": description,
                "amount": amount,
                "currency": currency,
                "exchange_rate": exchange_rate,
                **fields,
            }
        )
        now = self.clock.now()
        tx = Transaction(created_at=now, updated_at=now, **values)
        self.session.add(tx)
        self._flush()
        self._mark_dirty()
        logger.info(
            "transaction_created",
            extra={
                "transaction_id": tx.id,
                "type": tx.type,
                "scope": tx.scope,
                "amount_in_base": str(tx.amount_in_base),
                "currency": tx.currency,
            },
        )
        return self.get(tx.id)

    def _allocated_total(self, tx: Transaction) -> Decimal:
        selector = AllocationSelector(self.session)
        sums = (
            selector.allocated_by_payment([tx.id])
            if tx.is_payment
            else selector.allocated_by_invoice([tx.id])
        )
        return sums.get(tx.id, ZERO)

    def update(self, transaction_id: int, **fields) -> TransactionInfo:
        """
        Partial update; the result is re-validated as a whole.

        The locked exchange rate is kept unless the currency or the rate
        itself is part of the update.
        """
        self._reject_unknown_fields(fields, UPDATABLE_FIELDS)
        tx = self._get(transaction_id)

        values = {key: getattr(tx, key) for key in UPDATABLE_FIELDS}
        values.update(fields)
        if "currency" in fields and "exchange_rate" not in fields and fields["currency"] != tx.currency:
            values["exchange_rate"] = None
        values = self._validate(values)

        allocated = self._allocated_total(tx)
        if allocated > ZERO:
            if values["type"] != tx.type:
                raise AllocationTypeMismatchError(
                    "type cannot change while allocations exist"
                )
            if values["amount_in_base"] < allocated:
                raise OverAllocationError(
                    "allocated_exceeds_amount", values["amount_in_base"], allocated
                )

        for key, value in values.items():
            setattr(tx, key, value)
        tx.updated_at = self.clock.now()
        self._flush()
        self._mark_dirty()
        logger.info(
            "transaction_updated",
            extra={
                "transaction_id": transaction_id,
                "fields": sorted(fields),
                "amount_in_base": str(tx.amount_in_base),
            },
        )
        return self.get(transaction_id)

    def delete(self, transaction_id: int) -> TrashEntryInfo:
        """Move the transaction and every allocation touching it to trash."""
        tx = self._get(transaction_id)
        allocations = list(
            self.session.execute(
                select(PaymentAllocation).where(
                    or_(
                        PaymentAllocation.payment_id == transaction_id,
                        PaymentAllocation.invoice_id == transaction_id,
                    )
                )
            ).scalars()
        )
        return TrashService(self.session, self.clock).move_to_trash(
            "transaction",
            tx,
            tx.description,
            {Transaction: [tx], PaymentAllocation: allocations},
        )
