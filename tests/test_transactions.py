from datetime import date
from decimal import Decimal

import pydantic
import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from database import Base
from errors import InternalError, NotFoundError, ValidationError
from models import Category, Transaction, TransactionType, User
from schemas import TransactionIn, TransactionUpdate
from services import TransactionFilters, TransactionService


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    session.add_all(
        [
            User(id="user-u", email="u@example.com", name="U"),
            User(id="user-v", email="v@example.com", name="V"),
            Category(
                id="food-cat",
                user_id="user-u",
                name="Food & Dining",
                type=TransactionType.expense,
            ),
            Category(
                id="salary-cat",
                user_id="user-u",
                name="Salary",
                type=TransactionType.income,
            ),
            Category(
                id="v-food-cat",
                user_id="user-v",
                name="Food & Dining",
                type=TransactionType.expense,
            ),
        ]
    )
    session.commit()
    return session


def lunch() -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        amount=Decimal("50.00"),
        date=date(2026, 1, 8),
        category_id="food-cat",
        description="Lunch",
    )


def count_transactions(session: Session) -> int:
    return session.scalar(select(func.count(Transaction.id)))


def test_create_then_get_returns_input_fields() -> None:
    session = make_session()
    service = TransactionService(session, "user-u")

    created = service.create(lunch())
    fetched = service.get(created.id)

    assert fetched.id
    assert fetched.created_at is not None
    assert fetched.updated_at is not None
    assert fetched.user_id == "user-u"
    assert fetched.type == TransactionType.expense
    assert fetched.amount == Decimal("50.00")
    assert fetched.amount_cents == 5000
    assert fetched.date == date(2026, 1, 8)
    assert fetched.category_id == "food-cat"
    assert fetched.category.name == "Food & Dining"
    assert fetched.description == "Lunch"

    listed = service.paginate(TransactionFilters())
    assert [txn.id for txn in listed.data] == [created.id]


def test_camel_case_payload_is_accepted() -> None:
    payload = TransactionIn.model_validate(
        {
            "type": "income",
            "amount": 1000,
            "date": "2026-01-05",
            "categoryId": "salary-cat",
        }
    )

    assert payload.category_id == "salary-cat"
    assert payload.amount == Decimal("1000")
    assert payload.description is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": 0},
        {"amount": "-5"},
        {"amount": "1.234"},
        {"type": "transfer"},
        {"date": "2026-13-01"},
        {"date": "yesterday"},
        {"categoryId": ""},
    ],
)
def test_invalid_input_is_rejected_before_any_write(overrides: dict) -> None:
    session = make_session()
    raw = {
        "type": "expense",
        "amount": "50.00",
        "date": "2026-01-08",
        "categoryId": "food-cat",
    }
    raw.update(overrides)

    with pytest.raises(pydantic.ValidationError):
        TransactionService(session, "user-u").create(TransactionIn.model_validate(raw))

    assert count_transactions(session) == 0


def test_missing_category_id_is_rejected() -> None:
    with pytest.raises(pydantic.ValidationError):
        TransactionIn.model_validate(
            {"type": "expense", "amount": "5", "date": "2026-01-08"}
        )


def test_smallest_amount_is_accepted() -> None:
    session = make_session()
    data = lunch().model_copy(update={"amount": Decimal("0.01")})

    txn = TransactionService(session, "user-u").create(data)

    assert txn.amount == Decimal("0.01")


def test_unknown_category_is_not_found() -> None:
    session = make_session()
    data = lunch().model_copy(update={"category_id": "missing-cat"})

    with pytest.raises(NotFoundError):
        TransactionService(session, "user-u").create(data)
    assert count_transactions(session) == 0


def test_other_users_category_is_not_found() -> None:
    session = make_session()
    data = lunch().model_copy(update={"category_id": "v-food-cat"})

    with pytest.raises(NotFoundError):
        TransactionService(session, "user-u").create(data)


def test_category_type_mismatch_is_allowed_by_default() -> None:
    session = make_session()
    data = lunch().model_copy(update={"category_id": "salary-cat"})

    txn = TransactionService(session, "user-u", enforce_category_type=False).create(
        data
    )

    assert txn.type == TransactionType.expense
    assert txn.category.type == TransactionType.income


def test_category_type_mismatch_is_rejected_when_enforced() -> None:
    session = make_session()
    service = TransactionService(session, "user-u", enforce_category_type=True)
    data = lunch().model_copy(update={"category_id": "salary-cat"})

    with pytest.raises(ValidationError):
        service.create(data)

    txn = service.create(lunch())
    with pytest.raises(ValidationError):
        service.update(txn.id, TransactionUpdate(type=TransactionType.income))
    assert service.get(txn.id).type == TransactionType.expense


def test_update_changes_only_supplied_fields() -> None:
    session = make_session()
    service = TransactionService(session, "user-u")
    txn = service.create(lunch())
    created_at = txn.created_at
    previous_updated_at = txn.updated_at

    updated = service.update(txn.id, TransactionUpdate(amount=Decimal("62.50")))
    fetched = service.get(txn.id)

    assert updated.amount == Decimal("62.50")
    assert fetched.amount == Decimal("62.50")
    assert fetched.description == "Lunch"
    assert fetched.date == date(2026, 1, 8)
    assert fetched.type == TransactionType.expense
    assert fetched.category_id == "food-cat"
    assert fetched.created_at == created_at
    assert fetched.updated_at >= previous_updated_at


def test_update_can_move_to_another_owned_category() -> None:
    session = make_session()
    service = TransactionService(session, "user-u")
    txn = service.create(lunch())

    updated = service.update(
        txn.id,
        TransactionUpdate.model_validate(
            {"categoryId": "salary-cat", "type": "income", "date": "2026-01-31"}
        ),
    )

    assert updated.category_id == "salary-cat"
    assert updated.category.name == "Salary"
    assert updated.type == TransactionType.income
    assert updated.date == date(2026, 1, 31)


def test_update_to_foreign_category_is_not_found() -> None:
    session = make_session()
    service = TransactionService(session, "user-u")
    txn = service.create(lunch())

    with pytest.raises(NotFoundError):
        service.update(txn.id, TransactionUpdate(category_id="v-food-cat"))
    assert service.get(txn.id).category_id == "food-cat"


def test_explicit_null_description_clears_it() -> None:
    session = make_session()
    service = TransactionService(session, "user-u")
    txn = service.create(lunch())

    service.update(txn.id, TransactionUpdate.model_validate({"description": None}))

    assert service.get(txn.id).description is None


@pytest.mark.parametrize("field", ["amount", "type", "date", "categoryId"])
def test_explicit_null_for_required_field_is_rejected(field: str) -> None:
    session = make_session()
    service = TransactionService(session, "user-u")
    txn = service.create(lunch())

    with pytest.raises(ValidationError):
        service.update(txn.id, TransactionUpdate.model_validate({field: None}))

    fetched = service.get(txn.id)
    assert fetched.amount == Decimal("50.00")
    assert fetched.category_id == "food-cat"


def test_update_by_another_user_is_not_found_and_changes_nothing() -> None:
    session = make_session()
    txn = TransactionService(session, "user-u").create(lunch())

    with pytest.raises(NotFoundError):
        TransactionService(session, "user-v").update(
            txn.id, TransactionUpdate(amount=Decimal("1.00"), description="hacked")
        )

    fetched = TransactionService(session, "user-u").get(txn.id)
    assert fetched.amount == Decimal("50.00")
    assert fetched.description == "Lunch"


def test_get_by_another_user_is_not_found() -> None:
    session = make_session()
    txn = TransactionService(session, "user-u").create(lunch())

    with pytest.raises(NotFoundError):
        TransactionService(session, "user-v").get(txn.id)


def test_delete_twice_fails_consistently() -> None:
    session = make_session()
    service = TransactionService(session, "user-u")
    txn = service.create(lunch())

    service.delete(txn.id)

    for _ in range(2):
        with pytest.raises(NotFoundError):
            service.delete(txn.id)
    with pytest.raises(NotFoundError):
        service.get(txn.id)
    assert count_transactions(session) == 0


def test_delete_by_another_user_is_not_found() -> None:
    session = make_session()
    txn = TransactionService(session, "user-u").create(lunch())

    with pytest.raises(NotFoundError):
        TransactionService(session, "user-v").delete(txn.id)

    assert TransactionService(session, "user-u").get(txn.id).id == txn.id


def test_commit_failure_surfaces_internal_error(monkeypatch) -> None:
    session = make_session()

    def failing_commit() -> None:
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(InternalError):
        TransactionService(session, "user-u").create(lunch())

    monkeypatch.undo()
    assert count_transactions(session) == 0
