from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Text, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.sql.elements import ColumnElement

from config import get_settings
from csv_utils import export_transactions
from errors import ForbiddenError, InternalError, NotFoundError, ValidationError
from models import (
    Category,
    Transaction,
    TransactionType,
    amount_to_cents,
    cents_to_amount,
    utcnow,
)
from periods import DateRange, TrendPeriod, bucket_label
from schemas import CategoryIn, CategoryUpdate, TransactionIn, TransactionUpdate

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str, str]] = [
    ("Food & Dining", TransactionType.expense, "#EF4444", "utensils"),
    ("Transportation", TransactionType.expense, "#F59E0B", "car"),
    ("Shopping", TransactionType.expense, "#EC4899", "shopping-cart"),
    ("Entertainment", TransactionType.expense, "#8B5CF6", "film"),
    ("Bills & Utilities", TransactionType.expense, "#6366F1", "file-text"),
    ("Healthcare", TransactionType.expense, "#10B981", "heart"),
    ("Salary", TransactionType.income, "#059669", "dollar-sign"),
    ("Freelance", TransactionType.income, "#0891B2", "briefcase"),
    ("Investment", TransactionType.income, "#7C3AED", "trending-up"),
    ("Other Income", TransactionType.income, "#06B6D4", "plus-circle"),
]

# Fields a partial update may omit but never set to null.
NON_NULLABLE_UPDATE_FIELDS = ("type", "amount", "date", "category_id")


def commit_or_raise(session: Session, action: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"commit_failed: action={action}")
        raise InternalError("Could not save changes") from exc


def date_clauses(period: Optional[DateRange]) -> list[ColumnElement[bool]]:
    if period is None:
        return []
    if period.start and period.end:
        return [Transaction.date.between(period.start, period.end)]
    if period.start:
        return [Transaction.date >= period.start]
    if period.end:
        return [Transaction.date <= period.end]
    return []


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None

    def clauses(self, user_id: str) -> list[ColumnElement[bool]]:
        """Translate the criteria into a WHERE conjunction, always scoped to one user."""
        clauses: list[ColumnElement[bool]] = [Transaction.user_id == user_id]
        if self.type:
            clauses.append(Transaction.type == self.type)
        if self.category_id:
            clauses.append(Transaction.category_id == self.category_id)
        clauses.extend(date_clauses(DateRange(self.start_date, self.end_date)))
        if self.search:
            description = func.lower(
                func.coalesce(Transaction.description, ""), type_=Text
            )
            clauses.append(description.contains(self.search.lower(), autoescape=True))
        return clauses


@dataclass
class TransactionPage:
    data: list[Transaction]
    total: int
    page: int
    limit: int
    total_pages: int


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, category_id: str) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.user_id == self.user_id
            )
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name, Category.type)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return list(self.session.scalars(stmt).all())

    def _check_unique(
        self, name: str, type: TransactionType, exclude_id: Optional[str] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValidationError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValidationError("name cannot be blank")
        self._check_unique(name, data.type)
        category = Category(
            user_id=self.user_id,
            name=name,
            type=data.type,
            color=data.color,
            icon=data.icon,
            is_default=False,
        )
        self.session.add(category)
        commit_or_raise(self.session, "create_category")
        logger.info(f"category_created: id={category.id} user_id={self.user_id}")
        return category

    def update(self, category_id: str, data: CategoryUpdate) -> Category:
        changes = data.model_dump(exclude_unset=True)
        for field in ("name", "type", "color", "icon"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if not changes["name"]:
                raise ValidationError("name cannot be blank")

        category = self.get(category_id)
        if category.is_default:
            raise ForbiddenError("Cannot update default category")
        if "name" in changes or "type" in changes:
            self._check_unique(
                changes.get("name", category.name),
                changes.get("type", category.type),
                exclude_id=category.id,
            )
        for field, value in changes.items():
            setattr(category, field, value)
        category.updated_at = utcnow()

        commit_or_raise(self.session, "update_category")
        logger.info(
            f"category_updated: id={category_id} user_id={self.user_id} "
            f"fields={sorted(changes)}"
        )
        return category

    def seed_defaults(self) -> list[Category]:
        has_any = self.session.scalar(
            select(func.count(Category.id)).where(Category.user_id == self.user_id)
        )
        if has_any:
            return []
        created = [
            Category(
                user_id=self.user_id,
                name=name,
                type=txn_type,
                color=color,
                icon=icon,
                is_default=True,
            )
            for name, txn_type, color, icon in DEFAULT_CATEGORIES
        ]
        self.session.add_all(created)
        commit_or_raise(self.session, "seed_categories")
        logger.info(
            f"categories_seeded: user_id={self.user_id} count={len(created)}"
        )
        return created

    def delete(self, category_id: str) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ForbiddenError("Cannot delete default category")
        in_use = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category.id,
            )
        )
        if in_use:
            raise ValidationError("Category is used by existing transactions")
        self.session.delete(category)
        commit_or_raise(self.session, "delete_category")
        logger.info(f"category_deleted: id={category_id} user_id={self.user_id}")


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: str,
        *,
        enforce_category_type: Optional[bool] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        if enforce_category_type is None:
            enforce_category_type = get_settings().enforce_category_type
        self.enforce_category_type = enforce_category_type

    def _check_category_type(
        self, category: Category, txn_type: TransactionType
    ) -> None:
        if self.enforce_category_type and category.type != txn_type:
            raise ValidationError("Category type mismatch")

    def create(self, data: TransactionIn) -> Transaction:
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        self._check_category_type(category, data.type)
        txn = Transaction(
            user_id=self.user_id,
            category_id=category.id,
            type=data.type,
            amount_cents=amount_to_cents(data.amount),
            description=data.description,
            date=data.date,
        )
        self.session.add(txn)
        commit_or_raise(self.session, "create_transaction")
        logger.info(f"transaction_created: id={txn.id} user_id={self.user_id}")
        return self.get(txn.id)

    def get(self, transaction_id: str) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: str, data: TransactionUpdate) -> Transaction:
        changes = data.model_dump(exclude_unset=True)
        for field in NON_NULLABLE_UPDATE_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")

        txn = self.get(transaction_id)
        category = txn.category
        if "category_id" in changes:
            category = CategoryService(self.session, self.user_id).get(
                changes["category_id"]
            )
        if "type" in changes or "category_id" in changes:
            self._check_category_type(category, changes.get("type", txn.type))

        if "category_id" in changes:
            txn.category = category
        if "type" in changes:
            txn.type = changes["type"]
        if "amount" in changes:
            txn.amount_cents = amount_to_cents(changes["amount"])
        if "date" in changes:
            txn.date = changes["date"]
        if "description" in changes:
            txn.description = changes["description"]
        txn.updated_at = utcnow()

        commit_or_raise(self.session, "update_transaction")
        logger.info(
            f"transaction_updated: id={transaction_id} user_id={self.user_id} "
            f"fields={sorted(changes)}"
        )
        return self.get(transaction_id)

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        commit_or_raise(self.session, "delete_transaction")
        logger.info(f"transaction_deleted: id={transaction_id} user_id={self.user_id}")

    def paginate(
        self,
        filters: TransactionFilters,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> TransactionPage:
        if limit is None:
            limit = get_settings().default_page_limit
        if page < 1:
            raise ValidationError("page must be at least 1")
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        clauses = filters.clauses(self.user_id)
        total = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(*clauses)
            ).scalar_one()
            or 0
        )
        total_pages = math.ceil(total / limit)
        offset = (page - 1) * limit
        if offset >= total:
            # Past the last page; the offset is never sent to the database.
            return TransactionPage(
                data=[], total=total, page=page, limit=limit, total_pages=total_pages
            )
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(*clauses)
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
            .offset(offset)
            .limit(limit)
        )
        items = list(self.session.scalars(stmt).all())
        return TransactionPage(
            data=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
        )


class MetricsService:
    """Aggregate views over one user's transactions, recomputed on every call."""

    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def summary(self, period: Optional[DateRange] = None) -> dict[str, object]:
        stmt = (
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .where(Transaction.user_id == self.user_id, *date_clauses(period))
            .group_by(Transaction.type)
        )
        totals = {TransactionType.income: 0, TransactionType.expense: 0}
        count = 0
        for row in self.session.execute(stmt):
            totals[TransactionType(row.type)] = int(row.total or 0)
            count += int(row.count or 0)
        income = totals[TransactionType.income]
        expense = totals[TransactionType.expense]
        return {
            "total_income": cents_to_amount(income),
            "total_expense": cents_to_amount(expense),
            "net_balance": cents_to_amount(income - expense),
            "transaction_count": count,
        }

    def trend_rows(
        self, period: TrendPeriod = TrendPeriod.monthly
    ) -> list[dict[str, object]]:
        # Day totals come from SQL; bucket labels are built here so every
        # backend produces the same keys.
        stmt = (
            select(
                Transaction.date,
                Transaction.type,
                func.sum(Transaction.amount_cents).label("total"),
            )
            .where(Transaction.user_id == self.user_id)
            .group_by(Transaction.date, Transaction.type)
        )
        buckets: dict[tuple[str, TransactionType], int] = defaultdict(int)
        for row in self.session.execute(stmt):
            key = (bucket_label(row.date, period), TransactionType(row.type))
            buckets[key] += int(row.total or 0)
        ordered = sorted(buckets.items(), key=lambda item: (item[0][0], item[0][1].value))
        return [
            {"period": label, "type": txn_type, "total": cents_to_amount(cents)}
            for (label, txn_type), cents in ordered
        ]

    def trends(
        self, period: TrendPeriod = TrendPeriod.monthly
    ) -> list[dict[str, object]]:
        merged: dict[str, dict[TransactionType, Decimal]] = {}
        for row in self.trend_rows(period):
            point = merged.setdefault(
                row["period"],
                {
                    TransactionType.income: cents_to_amount(0),
                    TransactionType.expense: cents_to_amount(0),
                },
            )
            point[row["type"]] = row["total"]
        out: list[dict[str, object]] = []
        for label in sorted(merged):
            income = merged[label][TransactionType.income]
            expense = merged[label][TransactionType.expense]
            out.append(
                {
                    "period": label,
                    "income": income,
                    "expense": expense,
                    "net": income - expense,
                }
            )
        return out

    def category_breakdown(
        self,
        transaction_type: Optional[TransactionType] = None,
        period: Optional[DateRange] = None,
    ) -> list[dict[str, object]]:
        total = func.sum(Transaction.amount_cents)
        stmt = (
            select(
                Category.id.label("category_id"),
                Category.name.label("category_name"),
                Category.color,
                Category.icon,
                total.label("total"),
                func.count(Transaction.id).label("count"),
            )
            .select_from(Transaction)
            .join(Category, Category.id == Transaction.category_id)
            .where(Transaction.user_id == self.user_id, *date_clauses(period))
            .group_by(Category.id, Category.name, Category.color, Category.icon)
            .order_by(total.desc(), Category.name)
        )
        if transaction_type:
            stmt = stmt.where(Transaction.type == transaction_type)
        return [
            {
                "category_id": row.category_id,
                "category_name": row.category_name,
                "color": row.color,
                "icon": row.icon,
                "total": cents_to_amount(row.total),
                "count": int(row.count or 0),
            }
            for row in self.session.execute(stmt)
        ]


class CSVService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def export(self, filters: TransactionFilters) -> str:
        limit = get_settings().export_row_limit
        page = TransactionService(self.session, self.user_id).paginate(
            filters, page=1, limit=limit
        )
        csv_text = export_transactions(page.data)
        logger.info(
            f"transactions_exported: user_id={self.user_id} rows={len(page.data)} "
            f"matched={page.total}"
        )
        return csv_text
