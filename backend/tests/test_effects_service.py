# Overview: Pytest coverage for post-settlement effects (points, debt posting, stock) and their retry.

import pytest

from kasir.extensions import db
from kasir.models import Contact, LedgerEntry, Product, SettlementEffect, StockHistory
from kasir.services import cart_service, effects_service, ledger_service, settlement_service
from kasir.services.effects_service import STATUS_APPLIED, STATUS_FAILED, STATUS_SKIPPED
from kasir.services.errors import NotFoundError


def _settle(pos, method, cash_paid=None):
    settlement_service.open_settlement(pos)
    settlement_service.select_method(pos, method)
    if cash_paid is not None:
        settlement_service.set_amount(pos, cash_paid)
    return settlement_service.confirm(pos)


class TestDebtPosting:

    def test_underpaid_debt_posts_debit(self, db_session, pos, make_product, make_customer):
        customer = make_customer(name="Siti")
        cart_service.add_line(pos.cart, make_product(price=50000).id)
        cart_service.attach_customer(pos.cart, customer.id)

        outcome = _settle(pos, "debt", 20000)

        txn = outcome.transaction
        assert txn.grand_total == 50000
        assert txn.change == -30000
        assert outcome.effects.step("ledger").status == STATUS_APPLIED

        entries = ledger_service.list_entries(customer.id)
        assert len(entries) == 1
        assert entries[0].type == "debit"
        assert entries[0].amount == 30000
        assert entries[0].transaction_id == txn.id
        assert entries[0].description == f"Piutang Transaksi #{txn.id}"
        assert ledger_service.get_balance(customer.id) == 30000

    def test_fully_paid_debt_posts_nothing(self, db_session, pos, make_product, make_customer):
        customer = make_customer()
        cart_service.add_line(pos.cart, make_product(price=50000).id)
        cart_service.attach_customer(pos.cart, customer.id)

        outcome = _settle(pos, "debt", 50000)

        assert outcome.effects.step("ledger").status == STATUS_SKIPPED
        assert ledger_service.get_balance(customer.id) == 0

    def test_cash_sale_never_posts_debt(self, db_session, pos, make_product):
        cart_service.add_line(pos.cart, make_product(price=5000).id)
        _settle(pos, "cash", 10000)
        assert db_session.query(LedgerEntry).count() == 0


class TestPoints:

    def test_points_accrue_on_total(self, db_session, pos, make_product, make_customer, make_fee, settings):
        settings(pointSystemEnabled=True, pointValuePerPoint=10000, pointMinPurchase=50000)
        customer = make_customer()
        cart_service.add_line(pos.cart, make_product(price=97500).id)
        cart_service.set_fees(pos.cart, [make_fee(value=10).id])
        cart_service.attach_customer(pos.cart, customer.id)

        outcome = _settle(pos, "qris")

        assert outcome.transaction.points_earned == 10
        assert db.session.get(Contact, customer.id).points == 10
        assert outcome.effects.step("points").status == STATUS_APPLIED

    def test_below_minimum_earns_nothing(self, db_session, pos, make_product, make_customer, settings):
        settings(pointSystemEnabled=True, pointValuePerPoint=1000, pointMinPurchase=50000)
        customer = make_customer()
        cart_service.add_line(pos.cart, make_product(price=20000).id)
        cart_service.attach_customer(pos.cart, customer.id)

        outcome = _settle(pos, "qris")

        assert outcome.effects.step("points").status == STATUS_SKIPPED
        assert db.session.get(Contact, customer.id).points == 0

    def test_disabled_point_system(self, db_session, pos, make_product, make_customer):
        customer = make_customer()
        cart_service.add_line(pos.cart, make_product(price=20000).id)
        cart_service.attach_customer(pos.cart, customer.id)
        outcome = _settle(pos, "qris")
        assert outcome.effects.step("points").detail == "point system disabled"


class TestStock:

    def test_sale_decrements_and_logs(self, db_session, pos, make_product):
        product = make_product(stock=10)
        cart_service.add_line(pos.cart, product.id, quantity=3)

        txn = _settle(pos, "qris").transaction

        assert db.session.get(Product, product.id).stock == 7
        history = db_session.query(StockHistory).filter_by(product_id=product.id).all()
        assert len(history) == 1
        assert history[0].change_amount == -3
        assert history[0].type == "sale"
        assert history[0].reason == f"Penjualan #{txn.id}"

    def test_stale_cart_may_drive_stock_negative(self, db_session, pos, make_product):
        product = make_product(stock=1)
        cart_service.add_line(pos.cart, product.id)
        product.stock = 0
        db_session.commit()

        outcome = _settle(pos, "qris")

        assert outcome.effects.ok
        assert db.session.get(Product, product.id).stock == -1

    def test_unlimited_stock_untouched(self, db_session, pos, make_product):
        product = make_product(stock=None)
        cart_service.add_line(pos.cart, product.id, quantity=4)

        outcome = _settle(pos, "qris")

        assert db.session.get(Product, product.id).stock is None
        assert db_session.query(StockHistory).count() == 0
        keys = [e.effect_key for e in effects_service.list_effects(outcome.transaction.id)]
        assert keys == [f"stock:{product.id}"]

    def test_variation_stock_and_aggregate(self, db_session, pos, make_product):
        product = make_product(stock=None, variations=[
            {"name": "S", "price": 5000, "stock": 4},
            {"name": "M", "price": 5000, "stock": 6},
        ])
        cart_service.add_line(pos.cart, product.id, variation_index=1, quantity=2)

        _settle(pos, "qris")

        refreshed = db.session.get(Product, product.id)
        assert refreshed.variations[1]["stock"] == 4
        assert refreshed.stock == 8


class TestRetry:

    def test_retry_is_idempotent(self, db_session, pos, make_product, make_customer, settings):
        settings(pointSystemEnabled=True, pointValuePerPoint=1000)
        customer = make_customer()
        product = make_product(price=5000, stock=10)
        cart_service.add_line(pos.cart, product.id, quantity=2)
        cart_service.attach_customer(pos.cart, customer.id)
        txn = _settle(pos, "debt", 0).transaction

        report = effects_service.retry_effects(txn.id)

        assert all(step.status == STATUS_SKIPPED for step in report.steps)
        assert db.session.get(Product, product.id).stock == 8
        assert db.session.get(Contact, customer.id).points == 10
        assert ledger_service.get_balance(customer.id) == 10000
        assert db_session.query(SettlementEffect).filter_by(transaction_id=txn.id).count() == 3

    def test_failed_line_is_retried_later(self, db_session, pos, make_product):
        ok = make_product(name="Ada", stock=5)
        gone = make_product(name="Hilang", stock=5)
        gone_id = gone.id
        cart_service.add_line(pos.cart, ok.id)
        cart_service.add_line(pos.cart, gone_id)
        db_session.delete(gone)
        db_session.commit()

        outcome = _settle(pos, "qris")

        stock_step = outcome.effects.step("stock")
        assert stock_step.status == "partial"
        assert not outcome.effects.ok
        assert outcome.transaction.id is not None
        assert db.session.get(Product, ok.id).stock == 4

        db_session.add(Product(id=gone_id, name="Hilang", price=10000, stock=5, variations=[], wholesale_prices=[]))
        db_session.commit()

        report = effects_service.retry_effects(outcome.transaction.id)
        assert report.step("stock").status == STATUS_APPLIED
        assert db.session.get(Product, ok.id).stock == 4
        assert db.session.get(Product, gone_id).stock == 4

    def test_all_lines_failing(self, db_session, pos, make_product):
        gone = make_product(stock=5)
        cart_service.add_line(pos.cart, gone.id)
        db_session.delete(gone)
        db_session.commit()

        outcome = _settle(pos, "qris")
        assert outcome.effects.step("stock").status == STATUS_FAILED
        assert outcome.effects.failed_steps == ["stock"]

    def test_retry_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            effects_service.retry_effects(404)
