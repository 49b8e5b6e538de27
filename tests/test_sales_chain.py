"""
Tests for the downline forest and sponsor validation.
"""

from backoffice.sales import record_sale
from backoffice.sales_chain import (
    validate_sponsor, count_downline, get_sales_chain, iter_chain, MAX_CHAIN_DEPTH,
)


def _by_id(chain):
    return {node["id"]: node for node in iter_chain(chain)}


class TestGetSalesChain:
    def test_empty(self, store):
        assert get_sales_chain(store) == []

    def test_one_tree_per_root(self, store, make_rep):
        a = make_rep()
        b = make_rep()
        make_rep(upline=a)
        chain = get_sales_chain(store)
        assert {node["id"] for node in chain} == {a.id, b.id}

    def test_every_rep_appears_exactly_once(self, store, make_rep):
        a = make_rep()
        b = make_rep(upline=a)
        c = make_rep(upline=a)
        make_rep(upline=b)
        make_rep(upline=c)
        make_rep()

        ids = [node["id"] for node in iter_chain(get_sales_chain(store))]
        assert len(ids) == len(set(ids)) == len(store.list_representatives())

    def test_admins_are_not_in_the_forest(self, store, make_rep, make_admin):
        make_admin()
        rep = make_rep()
        chain = get_sales_chain(store)
        assert [node["id"] for node in iter_chain(chain)] == [rep.id]

    def test_node_shape_and_downline_count(self, store, make_rep):
        a = make_rep()
        b = make_rep(upline=a)
        make_rep(upline=a)
        make_rep(upline=b)

        nodes = _by_id(get_sales_chain(store))
        root = nodes[a.id]
        assert set(root) == {
            "id", "name", "role", "total_sales", "total_commissions", "downline_count", "children",
        }
        assert root["name"] == a.full_name
        assert root["role"] == "representative"
        assert root["downline_count"] == 2
        assert nodes[b.id]["downline_count"] == 1
        for node in nodes.values():
            assert node["downline_count"] == len(node["children"])

    def test_totals_aggregate_sales_and_commissions(self, store, make_rep, make_product, make_customer):
        a = make_rep(rate="10.00")
        b = make_rep(rate="10.00", upline=a)
        product = make_product(price="100.00")
        record_sale(store, product.id, make_customer(a).id, a.id, quantity=1)
        record_sale(store, product.id, make_customer(b).id, b.id, quantity=2)

        nodes = _by_id(get_sales_chain(store))
        assert nodes[a.id]["total_sales"] == 100.0
        assert nodes[b.id]["total_sales"] == 200.0
        # own 10.00 + override on b's 200 subtotal
        assert nodes[a.id]["total_commissions"] == 20.0
        assert nodes[b.id]["total_commissions"] == 20.0

    def test_rebuilding_gives_the_same_forest(self, store, make_rep):
        a = make_rep()
        make_rep(upline=a)
        make_rep()
        assert get_sales_chain(store) == get_sales_chain(store)

    def test_orphan_is_reported_as_root(self, store, make_rep):
        a = make_rep()
        orphan = make_rep(upline=a)
        store.update_user(orphan.id, upline_id="gone")
        store.commit()

        chain = get_sales_chain(store)
        assert {node["id"] for node in chain} == {a.id, orphan.id}
        assert _by_id(chain)[a.id]["downline_count"] == 0

    def test_cycle_members_still_appear_once(self, store, make_rep):
        a = make_rep()
        b = make_rep(upline=a)
        # a bypassed validation: a <-> b
        store.update_user(a.id, upline_id=b.id)
        store.commit()
        root = make_rep()

        ids = [node["id"] for node in iter_chain(get_sales_chain(store))]
        assert sorted(ids) == sorted([a.id, b.id, root.id])

    def test_depth_is_bounded(self, store, make_rep, monkeypatch):
        monkeypatch.setattr("backoffice.sales_chain.MAX_CHAIN_DEPTH", 2)
        rep = make_rep()
        for _ in range(4):
            rep = make_rep(upline=rep)

        chain = get_sales_chain(store)
        depth, node = 0, chain[0]
        while node["children"]:
            node = node["children"][0]
            depth += 1
        assert depth == 2
        assert MAX_CHAIN_DEPTH == 100

    def test_truncated_reps_are_not_promoted_to_roots(self, store, make_rep, monkeypatch, caplog):
        monkeypatch.setattr("backoffice.sales_chain.MAX_CHAIN_DEPTH", 2)
        root = make_rep()
        rep = root
        for _ in range(4):
            rep = make_rep(upline=rep)

        chain = get_sales_chain(store)
        assert [node["id"] for node in chain] == [root.id]
        assert len(list(iter_chain(chain))) == 3
        assert "truncated at depth 2" in caplog.text
        assert "sponsor cycle" not in caplog.text


class TestValidateSponsor:
    def test_no_sponsor_is_fine(self, store, make_rep):
        assert validate_sponsor(store, make_rep().id, None) is None

    def test_new_rep_under_existing_sponsor(self, store, make_rep):
        assert validate_sponsor(store, None, make_rep().id) is None

    def test_self_sponsorship(self, store, make_rep):
        rep = make_rep()
        assert validate_sponsor(store, rep.id, rep.id) == "A representative cannot sponsor themselves"

    def test_missing_sponsor(self, store, make_rep):
        assert validate_sponsor(store, make_rep().id, "ghost") == "Sponsor not found"

    def test_admin_cannot_sponsor(self, store, make_rep, make_admin):
        assert validate_sponsor(store, make_rep().id, make_admin().id) == "Sponsor not found"

    def test_rejects_cycle(self, store, make_rep):
        a = make_rep()
        b = make_rep(upline=a)
        c = make_rep(upline=b)
        error = validate_sponsor(store, a.id, c.id)
        assert error == "Sponsor assignment would create a cycle in the downline"

    def test_moving_between_branches(self, store, make_rep):
        a = make_rep()
        b = make_rep(upline=a)
        c = make_rep(upline=a)
        assert validate_sponsor(store, c.id, b.id) is None


def test_count_downline(store, make_rep):
    a = make_rep()
    b = make_rep(upline=a)
    make_rep(upline=a)
    make_rep(upline=b)
    assert count_downline(store, a.id) == 2
    assert count_downline(store, b.id) == 1
