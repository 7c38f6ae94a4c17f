from __future__ import annotations

from datetime import date

import pytest

from backoffice.services.errors import OrderNumberExhaustedError
from backoffice.services.order_number import generate_order_number, order_number_prefix, parse_sequence
from tests.test_utils import create_order_row, create_store


def test_prefix_uses_year_and_zero_padded_month():
    assert order_number_prefix(date(2024, 1, 31)) == "PN202401"
    assert order_number_prefix(date(2025, 12, 1)) == "PN202512"


def test_parse_sequence_rejects_non_numeric_suffix():
    assert parse_sequence("PN2024010042", "PN202401") == 42
    assert parse_sequence("PN202401ABCD", "PN202401") is None
    assert parse_sequence("PN202401", "PN202401") is None


def test_first_order_of_the_month_starts_at_one(db_session):
    store = create_store(db_session)

    number = generate_order_number(db_session, store.id, today=date(2024, 1, 15))

    assert number == "PN2024010001"


def test_next_number_follows_greatest_existing_sequence(db_session):
    store = create_store(db_session)
    create_order_row(db_session, store, "PN2024010003")
    create_order_row(db_session, store, "PN2024010007")
    create_order_row(db_session, store, "PN2024010005")

    number = generate_order_number(db_session, store.id, today=date(2024, 1, 20))

    assert number == "PN2024010008"


def test_sequence_is_scoped_to_month_and_store(db_session):
    store = create_store(db_session, name="A")
    other_store = create_store(db_session, name="B")
    create_order_row(db_session, store, "PN2023120099")
    create_order_row(db_session, other_store, "PN2024010042")

    number = generate_order_number(db_session, store.id, today=date(2024, 1, 2))

    assert number == "PN2024010001"


def test_non_numeric_suffix_restarts_sequence(db_session):
    store = create_store(db_session)
    create_order_row(db_session, store, "PN202401MANUAL")

    number = generate_order_number(db_session, store.id, today=date(2024, 1, 2))

    assert number == "PN2024010001"


def test_sequence_exhaustion_fails_loudly(db_session):
    store = create_store(db_session)
    create_order_row(db_session, store, "PN2024019999")

    with pytest.raises(OrderNumberExhaustedError):
        generate_order_number(db_session, store.id, today=date(2024, 1, 31))

    # Next month starts over
    assert generate_order_number(db_session, store.id, today=date(2024, 2, 1)) == "PN2024020001"
