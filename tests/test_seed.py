"""
Tests for demo data seeding.
"""

import random

from backoffice.security import verify_password
from backoffice.seed import seed_demo_data, DEMO_PRODUCTS, DEMO_CUSTOMERS
from backoffice.sales_chain import get_sales_chain


def test_seeds_empty_database(store):
    assert seed_demo_data(store, sales=10, rng=random.Random(7)) is True

    admin = store.get_user_by_username("admin")
    rep1 = store.get_user_by_username("rep1")
    rep2 = store.get_user_by_username("rep2")
    assert admin.role == "admin"
    assert verify_password("admin123", admin.password)
    assert verify_password("rep123", rep1.password)
    assert rep2.upline_id == rep1.id

    assert len(store.list_products()) == len(DEMO_PRODUCTS)
    assert len(store.list_customers()) == len(DEMO_CUSTOMERS)
    assert len(store.list_sales()) == 10
    assert all(inv.quantity >= 0 for inv in store.list_inventory())


def test_every_sale_is_by_the_customers_owner(store):
    seed_demo_data(store, sales=10, rng=random.Random(1))
    for sale in store.list_sales():
        assert store.get_customer(sale.customer_id).representative_id == sale.representative_id


def test_rep2_sales_pay_rep1_an_override(store):
    seed_demo_data(store, sales=20, rng=random.Random(3))
    rep1 = store.get_user_by_username("rep1")
    rep2 = store.get_user_by_username("rep2")

    rep2_sales = store.list_sales_by_rep(rep2.id)
    overrides = [c for c in store.list_commissions_by_rep(rep1.id) if c.level == 2]
    assert len(overrides) == len(rep2_sales)


def test_forest_has_one_root(store):
    seed_demo_data(store, rng=random.Random(5))
    chain = get_sales_chain(store)
    assert len(chain) == 1
    assert chain[0]["name"] == "John Smith"
    assert chain[0]["children"][0]["name"] == "Sarah Johnson"


def test_paid_commissions_are_stamped(store):
    seed_demo_data(store, sales=10, rng=random.Random(11))
    for comm in store.list_commissions():
        assert (comm.status == "paid") == (comm.paid_at is not None)


def test_does_nothing_when_users_exist(store, make_rep):
    make_rep()
    assert seed_demo_data(store) is False
    assert store.list_products() == []
