# Overview: Pytest coverage for the settlement state machine, donation rounding and confirmation.

"""
Settlement Engine Tests

Covers:
- payment gating per method (TUNAI / QRIS / PIUTANG)
- donation rounding (store setting and per-transaction toggle)
- confirmation: persisted record, sync queue, cart reset
- persistence failure before the write leaves the session retryable
- effect failures after the write never undo the settlement
"""

import pytest
from sqlalchemy.exc import OperationalError

from kasir.extensions import db
from kasir.models import Product, SyncQueueItem, Transaction
from kasir.services import cart_service, effects_service, settlement_service
from kasir.services.effects_service import STATUS_APPLIED, STATUS_FAILED
from kasir.services.settlement_service import (
    AWAITING_AMOUNT,
    READY,
    SELECTING_METHOD,
    SETTLED,
    SettlementError,
    donation_for,
)


@pytest.fixture
def cart_of_97500(pos, make_product, make_fee):
    """Cart subtotal 97500 with a single 10% fee: total 107250."""
    product = make_product(price=97500, stock=10)
    fee = make_fee(name="Layanan", value=10)
    cart_service.add_line(pos.cart, product.id)
    cart_service.set_fees(pos.cart, [fee.id])
    return product


class TestDonation:

    def test_donation_for(self, app):
        assert donation_for(107250, True, 1000) == 750
        assert donation_for(108000, True, 1000) == 0
        assert donation_for(0, True, 1000) == 0
        assert donation_for(107250, False, 1000) == 0

    def test_example_with_setting_enabled(self, db_session, pos, cart_of_97500, settings):
        settings(enableDonationRounding=True)
        q = settlement_service.open_settlement(pos)
        assert q.totals.total == 107250
        assert q.donation == 750
        assert q.grand_total == 108000

    def test_setting_disabled_means_no_rounding(self, db_session, pos, cart_of_97500):
        q = settlement_service.open_settlement(pos)
        assert q.donation == 0
        assert q.grand_total == 107250

    def test_toggle_per_transaction(self, db_session, pos, cart_of_97500, settings):
        settings(enableDonationRounding=True)
        settlement_service.open_settlement(pos)
        q = settlement_service.toggle_donation(pos)
        assert q.donation == 0
        q = settlement_service.toggle_donation(pos)
        assert q.donation == 750
        q = settlement_service.toggle_donation(pos, enabled=False)
        assert q.grand_total == q.totals.total

    def test_toggle_cannot_enable_when_setting_off(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        q = settlement_service.toggle_donation(pos, enabled=True)
        assert q.donation == 0


class TestPaymentGating:

    def test_open_requires_items(self, db_session, pos):
        with pytest.raises(SettlementError):
            settlement_service.open_settlement(pos)

    def test_starts_selecting_method(self, db_session, pos, cart_of_97500):
        q = settlement_service.open_settlement(pos)
        assert q.state == SELECTING_METHOD

    def test_cash_underpaid_stays_awaiting(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "cash")
        q = settlement_service.set_amount(pos, 100000)
        assert q.state == AWAITING_AMOUNT
        assert q.shortfall == 7250
        with pytest.raises(SettlementError):
            settlement_service.confirm(pos)

    def test_cash_exact_or_over_is_ready(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "TUNAI")
        q = settlement_service.set_amount(pos, 110000)
        assert q.state == READY
        assert q.change == 2750

    def test_qris_always_exact(self, db_session, pos, cart_of_97500, settings):
        settings(enableDonationRounding=True)
        settlement_service.open_settlement(pos)
        q = settlement_service.select_method(pos, "qris")
        assert q.state == READY
        assert q.cash_paid == q.grand_total == 108000
        assert q.change == 0
        with pytest.raises(SettlementError):
            settlement_service.set_amount(pos, 5)

    def test_debt_without_customer_never_ready(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "debt")
        for amount in (0, 50000, 1000000):
            q = settlement_service.set_amount(pos, amount)
            assert q.state != READY
        with pytest.raises(SettlementError):
            settlement_service.confirm(pos)

    def test_debt_with_customer_accepts_underpayment(self, db_session, pos, cart_of_97500, make_customer):
        cart_service.attach_customer(pos.cart, make_customer().id)
        settlement_service.open_settlement(pos)
        q = settlement_service.select_method(pos, "PIUTANG")
        assert q.state == READY
        assert q.change == -107250
        q = settlement_service.set_amount(pos, 20000)
        assert q.state == READY
        assert q.change == -87250

    def test_amount_is_rounded_to_whole_units(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "cash")
        q = settlement_service.set_amount(pos, 107249.5)
        assert pos.settlement.cash_paid == 107250
        assert q.state == READY
        assert q.change == 0

        settlement_service.set_amount(pos, 107249.4)
        assert pos.settlement.cash_paid == 107249

    def test_invalid_inputs(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        with pytest.raises(SettlementError):
            settlement_service.set_amount(pos, 1000)
        with pytest.raises(SettlementError):
            settlement_service.select_method(pos, "bitcoin")
        settlement_service.select_method(pos, "cash")
        with pytest.raises(SettlementError):
            settlement_service.set_amount(pos, -1)
        with pytest.raises(SettlementError):
            settlement_service.set_amount(pos, "abc")

    def test_cart_edits_are_reflected(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "cash")
        settlement_service.set_amount(pos, 110000)
        cart_service.update_quantity(pos.cart, pos.cart.items[0].line_id, 1)
        assert settlement_service.quote(pos).state == AWAITING_AMOUNT

    def test_cancel_abandons_without_persisting(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "qris")
        settlement_service.cancel_settlement(pos)
        assert pos.settlement is None
        assert db_session.query(Transaction).count() == 0
        assert len(pos.cart.items) == 1


class TestConfirm:

    def test_cash_sale_persists_and_resets_cart(self, db_session, pos, cart_of_97500, settings, make_fee):
        settings(enableDonationRounding=True)
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "cash")
        settlement_service.set_amount(pos, 110000)

        outcome = settlement_service.confirm(pos)
        txn = outcome.transaction

        assert txn.payment_method == "TUNAI"
        assert txn.total == 107250
        assert txn.donation == 750
        assert txn.grand_total == 108000
        assert txn.cash_paid == 110000
        assert txn.change == 2000
        assert txn.user_name == "Kasir 1"
        assert txn.items[0]["basePrice"] == 97500
        assert txn.fees[0]["amount"] == 9750
        assert txn.grand_total % 1000 == 0

        assert pos.cart.is_empty
        assert pos.settlement.state == SETTLED
        assert pos.last_transaction_id == txn.id

        actions = [item.action for item in db_session.query(SyncQueueItem).order_by(SyncQueueItem.id)]
        assert "CREATE_TRANSACTION" in actions

    def test_settled_is_terminal(self, db_session, pos, cart_of_97500):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "qris")
        settlement_service.confirm(pos)
        with pytest.raises(SettlementError):
            settlement_service.confirm(pos)

    def test_total_invariant_on_record(self, db_session, pos, make_product, make_fee):
        product = make_product(price=1234.5, stock=None, discount={"type": "percentage", "value": 3})
        a = make_fee(name="PPN", value=11)
        b = make_fee(name="Bungkus", type="fixed", value=1500)
        cart_service.add_line(pos.cart, product.id, quantity=7)
        cart_service.set_fees(pos.cart, [a.id, b.id])
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "qris")

        txn = settlement_service.confirm(pos).transaction
        rounded_lines = sum(round(i["effectivePrice"] * i["quantity"] + 1e-9) for i in txn.items)
        assert txn.total == rounded_lines + sum(f["amount"] for f in txn.fees)
        assert txn.grand_total == txn.total + txn.donation

    def test_persistence_failure_is_retryable(self, db_session, pos, cart_of_97500, monkeypatch):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "qris")

        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db.session, "commit", broken_commit)
        with pytest.raises(SettlementError) as exc:
            settlement_service.confirm(pos)
        monkeypatch.undo()

        assert exc.value.message == "Transaksi gagal. Silakan coba lagi."
        assert len(pos.cart.items) == 1
        assert pos.settlement.state == READY
        assert db_session.query(Transaction).count() == 0

        outcome = settlement_service.confirm(pos)
        assert outcome.transaction.id is not None

    def test_effects_failure_after_write_still_settles(self, db_session, pos, cart_of_97500, monkeypatch):
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "qris")

        def broken_lookup(transaction_id, effect_key):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(effects_service, "is_applied", broken_lookup)
        outcome = settlement_service.confirm(pos)
        monkeypatch.undo()

        assert outcome.transaction.id is not None
        assert not outcome.effects.ok
        assert outcome.effects.step("stock").status == STATUS_FAILED
        assert pos.settlement.state == SETTLED
        assert pos.cart.is_empty
        assert db_session.query(Transaction).count() == 1
        with pytest.raises(SettlementError):
            settlement_service.confirm(pos)

        report = effects_service.retry_effects(outcome.transaction.id)
        assert report.ok
        assert db.session.get(Product, cart_of_97500.id).stock == 9

    def test_crashing_step_is_contained(self, db_session, pos, cart_of_97500, monkeypatch):
        def crashing_step(transaction):
            raise RuntimeError("boom")

        monkeypatch.setattr(
            effects_service, "PIPELINE", (("points", crashing_step),) + effects_service.PIPELINE[1:]
        )
        settlement_service.open_settlement(pos)
        settlement_service.select_method(pos, "qris")
        outcome = settlement_service.confirm(pos)

        points = outcome.effects.step("points")
        assert points.status == STATUS_FAILED
        assert points.errors == ["boom"]
        assert outcome.effects.step("stock").status == STATUS_APPLIED
        assert pos.settlement.state == SETTLED
        assert pos.cart.is_empty
