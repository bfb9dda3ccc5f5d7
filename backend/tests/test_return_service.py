# Overview: Pytest coverage for line returns, voids and normalization of stored transaction records.

import pytest
from sqlalchemy.exc import OperationalError

from kasir.extensions import db
from kasir.models import Contact, LedgerEntry, Product, StockHistory, SyncQueueItem, Transaction
from kasir.services import cart_service, effects_service, return_service, settlement_service
from kasir.services.errors import NotFoundError
from kasir.services.return_service import ReturnError, normalize_transaction, recompute_totals


def _sell(pos, lines, method="qris", cash_paid=None):
    for product_id, quantity in lines:
        cart_service.add_line(pos.cart, product_id, quantity=quantity)
    settlement_service.open_settlement(pos)
    settlement_service.select_method(pos, method)
    if cash_paid is not None:
        settlement_service.set_amount(pos, cash_paid)
    return settlement_service.confirm(pos).transaction


def _sell_with_failed_line(db_session, pos, make_product, failed_first):
    """
    Sell A and B (one each, stock 5) where A's stock decrement fails because
    the product is missing at settlement, then bring A back with stock 5.
    """
    a = make_product(name="A", stock=5)
    b = make_product(name="B", stock=5)
    a_id, b_id = a.id, b.id
    order = [a_id, b_id] if failed_first else [b_id, a_id]
    for product_id in order:
        cart_service.add_line(pos.cart, product_id)
    db_session.delete(a)
    db_session.commit()

    settlement_service.open_settlement(pos)
    settlement_service.select_method(pos, "qris")
    outcome = settlement_service.confirm(pos)
    assert outcome.effects.step("stock").status == "partial"

    db_session.add(Product(id=a_id, name="A", price=10000, stock=5, variations=[], wholesale_prices=[]))
    db_session.commit()
    return outcome.transaction.id, a_id, b_id


class TestNormalize:

    def test_legacy_composite_id_and_missing_prices(self):
        record = {
            "id": 1,
            "items": [
                {"id": "12-1", "name": "Kaos (L)", "price": 60000, "quantity": 2, "discountPercentage": 10},
                {"id": 7, "name": "Teh", "price": 5000, "quantity": 1},
            ],
            "fees": [{"name": "PPN", "type": "percentage", "value": 10}],
        }
        canonical = normalize_transaction(record)
        first, second = canonical["items"]

        assert (first["productId"], first["variationIndex"]) == (12, 1)
        assert first["basePrice"] == 60000
        assert first["effectivePrice"] == pytest.approx(54000)
        assert first["isWholesale"] is False
        assert (second["productId"], second["variationIndex"]) == (7, None)
        assert second["effectivePrice"] == 5000
        assert canonical["fees"][0]["amount"] == 11300
        assert canonical["donation"] == 0
        # input untouched
        assert "productId" not in record["items"][0]

    def test_canonical_lines_pass_through(self):
        item = {"productId": 3, "variationIndex": None, "name": "X", "price": 800, "basePrice": 800,
                "effectivePrice": 700, "quantity": 3, "isWholesale": True}
        canonical = normalize_transaction({"items": [item], "fees": [], "donation": 250})
        assert canonical["items"][0] == item
        assert canonical["donation"] == 250

    def test_recompute_keeps_fixed_fee_and_donation(self):
        items = [{"basePrice": 1000, "effectivePrice": 1000, "quantity": 3}]
        fees = [
            {"name": "PPN", "type": "percentage", "value": 10, "amount": 999},
            {"name": "Bungkus", "type": "fixed", "value": 2000, "amount": 2000},
        ]
        derived = recompute_totals(items, fees, donation=700, cash_paid=10000)
        assert [f["amount"] for f in derived["fees"]] == [300, 2000]
        assert derived["total"] == 5300
        assert derived["grand_total"] == 6000
        assert derived["change"] == 4000


class TestReturnLine:

    def test_partial_return_recomputes_and_restocks(self, db_session, pos, make_product, make_fee):
        a = make_product(name="A", price=10000, stock=10)
        b = make_product(name="B", price=5000, stock=10)
        cart_service.set_fees(pos.cart, [make_fee(value=10).id])
        txn = _sell(pos, [(a.id, 2), (b.id, 1)], method="cash", cash_paid=50000)
        assert txn.total == 27500

        outcome = return_service.return_line(txn.id, 1, user_id=7, user_name="Kasir 1")

        assert not outcome.deleted
        updated = outcome.transaction
        assert len(updated.items) == 1
        assert updated.fees[0]["amount"] == 2000
        assert updated.total == 22000
        assert updated.grand_total == updated.total + updated.donation
        assert updated.change == 50000 - updated.grand_total
        assert db.session.get(Product, b.id).stock == 10

        actions = [i.action for i in db_session.query(SyncQueueItem).all()]
        assert "UPDATE_TRANSACTION" in actions

    def test_stock_is_conserved(self, db_session, pos, make_product):
        product = make_product(stock=8)
        txn = _sell(pos, [(product.id, 3)])
        return_service.return_line(txn.id, 0)

        changes = [h.change_amount for h in db_session.query(StockHistory).filter_by(product_id=product.id)]
        assert sorted(changes) == [-3, 3]
        assert sum(changes) == 0
        types = {h.type for h in db_session.query(StockHistory).all()}
        assert types == {"sale", "return"}

    def test_last_line_deletes_transaction(self, db_session, pos, make_product):
        product = make_product(stock=5)
        txn = _sell(pos, [(product.id, 1)])
        txn_id = txn.id

        outcome = return_service.return_line(txn_id, 0)

        assert outcome.deleted
        assert db.session.get(Transaction, txn_id) is None
        delete_items = db_session.query(SyncQueueItem).filter_by(action="DELETE_TRANSACTION").all()
        assert delete_items[0].payload["id"] == txn_id

    def test_points_and_ledger_are_not_reversed(self, db_session, pos, make_product, make_customer, settings):
        settings(pointSystemEnabled=True, pointValuePerPoint=1000)
        customer = make_customer()
        product = make_product(price=10000, stock=5)
        cart_service.attach_customer(pos.cart, customer.id)
        txn = _sell(pos, [(product.id, 2)], method="debt", cash_paid=0)

        return_service.return_line(txn.id, 0)

        assert db.session.get(Contact, customer.id).points == 20
        assert db_session.query(LedgerEntry).count() == 1

    def test_donation_kept_after_return(self, db_session, pos, make_product, settings):
        settings(enableDonationRounding=True)
        a = make_product(name="A", price=1250, stock=None)
        b = make_product(name="B", price=3000, stock=None)
        txn = _sell(pos, [(a.id, 1), (b.id, 1)])
        assert txn.donation == 750

        updated = return_service.return_line(txn.id, 1).transaction
        assert updated.donation == 750
        assert updated.grand_total == 2000

    def test_unlimited_stock_not_restocked(self, db_session, pos, make_product):
        a = make_product(name="A", stock=None)
        b = make_product(name="B", stock=None)
        txn = _sell(pos, [(a.id, 1), (b.id, 1)])

        outcome = return_service.return_line(txn.id, 0)

        assert outcome.restocked is False
        assert db_session.query(StockHistory).count() == 0

    def test_invalid_index(self, db_session, pos, make_product):
        txn = _sell(pos, [(make_product().id, 1)])
        with pytest.raises(NotFoundError):
            return_service.return_line(txn.id, 5)
        with pytest.raises(NotFoundError):
            return_service.return_line(txn.id, -1)

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            return_service.return_line(999, 0)

    def test_legacy_record_can_be_returned(self, db_session, make_product):
        product = make_product(stock=None, variations=[{"name": "S", "price": 5000, "stock": 2}])
        txn = Transaction(
            items=[
                {"id": f"{product.id}-0", "name": "Kaos (S)", "price": 5000, "quantity": 2},
                {"id": str(product.id + 1000), "name": "Lain", "price": 1000, "quantity": 1},
            ],
            fees=[],
            subtotal=11000, total_discount=0, total=11000, donation=0, grand_total=11000,
            cash_paid=11000, change=0, payment_method="TUNAI",
        )
        db_session.add(txn)
        db_session.commit()

        outcome = return_service.return_line(txn.id, 0)

        assert outcome.restocked
        assert db.session.get(Product, product.id).variations[0]["stock"] == 4
        assert outcome.transaction.total == 1000
        assert outcome.transaction.items[0]["productId"] == product.id + 1000


class TestVoid:

    def test_void_equals_returning_every_line(self, db_session, pos, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)
        txn = _sell(pos, [(a.id, 2), (b.id, 3)])
        txn_id = txn.id

        result = return_service.void_transaction(txn_id, user_name="Admin")

        assert result == {"transactionId": txn_id, "deleted": True, "restockedLines": 2}
        assert db.session.get(Transaction, txn_id) is None
        assert db.session.get(Product, a.id).stock == 10
        assert db.session.get(Product, b.id).stock == 10
        reasons = {h.reason for h in db_session.query(StockHistory).filter_by(type="return")}
        assert reasons == {f"Batal Transaksi #{txn_id}"}

    def test_void_skips_line_whose_sale_never_took_stock(self, db_session, pos, make_product):
        txn_id, a_id, b_id = _sell_with_failed_line(db_session, pos, make_product, failed_first=True)

        result = return_service.void_transaction(txn_id)

        assert result["restockedLines"] == 1
        assert db.session.get(Product, a_id).stock == 5
        assert db.session.get(Product, b_id).stock == 5


class TestReturnAfterFailedStock:

    def test_return_undecremented_line_then_retry(self, db_session, pos, make_product):
        txn_id, a_id, b_id = _sell_with_failed_line(db_session, pos, make_product, failed_first=True)

        outcome = return_service.return_line(txn_id, 0)

        assert outcome.returned_line["productId"] == a_id
        assert outcome.restocked is False
        assert db.session.get(Product, a_id).stock == 5
        assert db_session.query(StockHistory).filter_by(product_id=a_id).count() == 0

        report = effects_service.retry_effects(txn_id)

        assert report.step("stock").status == "skipped"
        assert db.session.get(Product, a_id).stock == 5
        assert db.session.get(Product, b_id).stock == 4

    def test_retry_after_return_decrements_the_failed_line(self, db_session, pos, make_product):
        txn_id, a_id, b_id = _sell_with_failed_line(db_session, pos, make_product, failed_first=False)

        outcome = return_service.return_line(txn_id, 0)
        assert outcome.returned_line["productId"] == b_id
        assert outcome.restocked is True
        assert db.session.get(Product, b_id).stock == 5

        report = effects_service.retry_effects(txn_id)

        assert report.step("stock").status == "applied"
        assert db.session.get(Product, a_id).stock == 4
        assert db.session.get(Product, b_id).stock == 5

        again = effects_service.retry_effects(txn_id)
        assert again.step("stock").status == "skipped"
        assert db.session.get(Product, a_id).stock == 4

    def test_stock_keys_follow_the_product_not_the_position(self, db_session, pos, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=5)
        txn = _sell(pos, [(a.id, 1), (b.id, 1)])
        txn_id = txn.id

        assert [item["lineKey"] for item in txn.items] == [str(a.id), str(b.id)]
        return_service.return_line(txn_id, 0)

        keys = {e.effect_key for e in effects_service.list_effects(txn_id)}
        assert keys == {f"stock:{a.id}", f"stock:{b.id}"}
        assert effects_service.retry_effects(txn_id).step("stock").status == "skipped"
        assert db.session.get(Product, b.id).stock == 4


class TestPersistenceFailure:

    @staticmethod
    def _break_commit(monkeypatch):
        def broken_commit():
            raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db.session, "commit", broken_commit)

    def test_return_failure_leaves_record_and_stock(self, db_session, pos, make_product, monkeypatch):
        a = make_product(name="A", price=1000, stock=5)
        b = make_product(name="B", price=2000, stock=5)
        txn_id = _sell(pos, [(a.id, 1), (b.id, 1)]).id

        self._break_commit(monkeypatch)
        with pytest.raises(ReturnError):
            return_service.return_line(txn_id, 0)
        monkeypatch.undo()

        txn = db.session.get(Transaction, txn_id)
        assert len(txn.items) == 2
        assert txn.total == 3000
        assert db.session.get(Product, a.id).stock == 4
        assert db_session.query(StockHistory).filter_by(type="return").count() == 0

        assert return_service.return_line(txn_id, 0).restocked

    def test_void_failure_keeps_transaction(self, db_session, pos, make_product, monkeypatch):
        product = make_product(stock=5)
        txn_id = _sell(pos, [(product.id, 2)]).id

        self._break_commit(monkeypatch)
        with pytest.raises(ReturnError):
            return_service.void_transaction(txn_id)
        monkeypatch.undo()

        assert db.session.get(Transaction, txn_id) is not None
        assert db.session.get(Product, product.id).stock == 3
