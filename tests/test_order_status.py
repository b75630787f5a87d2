"""Tests for the order status state machine."""

import pytest

from storefront.errors import InvalidTransitionError, OrderNotFoundError, ValidationError
from storefront.order_status import (
    CANCELLED,
    DELIVERED,
    PENDING,
    PROCESSING,
    SHIPPED,
    allowed_transitions,
    check_transition,
)

from conftest import USER_ID, sign


@pytest.fixture
def cod_order(storefront, products, address):
    storefront.cart.add_item(USER_ID, products["shirt"].id, 2)
    return storefront.checkout.start_checkout(USER_ID, address, "cod").order


class TestTransitionTable:
    def test_from_pending(self):
        assert allowed_transitions(PENDING) == {PROCESSING, CANCELLED}

    @pytest.mark.parametrize("status", [DELIVERED, CANCELLED])
    def test_terminal_states(self, status):
        assert allowed_transitions(status) == frozenset()

    @pytest.mark.parametrize(
        "current,requested",
        [
            (PENDING, SHIPPED),
            (PENDING, DELIVERED),
            (PENDING, "confirmed"),
            (PROCESSING, PENDING),
            (SHIPPED, PROCESSING),
            (DELIVERED, CANCELLED),
        ],
    )
    def test_disallowed(self, current, requested):
        with pytest.raises(InvalidTransitionError):
            check_transition(current, requested, "TRK1", "BlueDart")

    def test_unknown_status(self):
        with pytest.raises(InvalidTransitionError, match="unknown status"):
            check_transition(PENDING, "lost")

    @pytest.mark.parametrize("tracking,courier", [(None, "BlueDart"), ("TRK1", None), ("  ", "BlueDart")])
    def test_shipped_requires_tracking_and_courier(self, tracking, courier):
        with pytest.raises(InvalidTransitionError, match="tracking"):
            check_transition(PROCESSING, SHIPPED, tracking, courier)


class TestOrderStatusMachine:
    def test_full_lifecycle(self, storefront, cod_order):
        machine = storefront.status
        machine.transition(cod_order.id, PROCESSING)
        shipped = machine.transition(cod_order.id, SHIPPED, tracking_no=" TRK1 ", courier_provider="BlueDart")
        assert shipped.tracking_no == "TRK1"
        assert shipped.courier_provider == "BlueDart"

        delivered = machine.transition(cod_order.id, DELIVERED)
        assert delivered.order_status == DELIVERED

        with pytest.raises(InvalidTransitionError):
            machine.transition(cod_order.id, CANCELLED)

    def test_failed_transition_changes_nothing(self, storefront, cod_order):
        with pytest.raises(InvalidTransitionError):
            storefront.status.transition(cod_order.id, SHIPPED)
        assert storefront.orders.get_order(cod_order.id).order_status == PENDING

    def test_unknown_order(self, storefront):
        with pytest.raises(OrderNotFoundError):
            storefront.status.transition("missing", PROCESSING)

    def test_confirmed_order_can_progress(self, storefront, products, address):
        storefront.cart.add_item(USER_ID, products["shirt"].id)
        result = storefront.checkout.start_checkout(USER_ID, address, "online")
        gid = result.payment.gateway_order_id
        storefront.checkout.confirm_online_payment(result.order.id, gid, "pay_1", sign(gid, "pay_1"))

        order = storefront.status.transition(result.order.id, PROCESSING)
        assert order.order_status == PROCESSING


class TestCancellation:
    def test_cancel_restocks_once(self, storefront, products, cod_order, notifier):
        shirt = products["shirt"].id
        assert storefront.ledger.available(shirt) == 1

        cancelled = storefront.status.transition(cod_order.id, CANCELLED)

        assert cancelled.order_status == CANCELLED
        assert cancelled.stock_released is True
        assert storefront.ledger.available(shirt) == 3
        assert notifier.messages[-1][1] == f"Order Cancelled - {cod_order.order_no}"

        # A second release attempt is a no-op
        storefront.status._release_stock(storefront.orders.get_order(cod_order.id))
        assert storefront.ledger.available(shirt) == 3

    def test_cancel_from_shipped(self, storefront, products, cod_order):
        storefront.status.transition(cod_order.id, PROCESSING)
        storefront.status.transition(cod_order.id, SHIPPED, "TRK1", "BlueDart")
        storefront.status.transition(cod_order.id, CANCELLED)
        assert storefront.ledger.available(products["shirt"].id) == 3

    def test_cancel_unsettled_order_leaves_stock(self, storefront, products, address):
        storefront.cart.add_item(USER_ID, products["shirt"].id, 2)
        order = storefront.checkout.start_checkout(USER_ID, address, "online").order

        cancelled = storefront.status.transition(order.id, CANCELLED)

        assert cancelled.stock_released is False
        assert storefront.ledger.available(products["shirt"].id) == 3

    def test_cancelled_order_cannot_be_paid(self, storefront, products, address):
        storefront.cart.add_item(USER_ID, products["shirt"].id)
        result = storefront.checkout.start_checkout(USER_ID, address, "online")
        storefront.status.transition(result.order.id, CANCELLED)
        gid = result.payment.gateway_order_id

        with pytest.raises(ValidationError, match="cancelled"):
            storefront.checkout.confirm_online_payment(result.order.id, gid, "pay_1", sign(gid, "pay_1"))
        assert storefront.ledger.available(products["shirt"].id) == 3
