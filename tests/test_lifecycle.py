import pytest

from services.lifecycle import (
    TERMINAL_STATUSES,
    Action,
    OrderClass,
    RetailStatus,
    StockStatus,
    allowed_actions,
    is_terminal,
    next_status,
    parse_status,
)
from utils.errors import Forbidden, PreconditionFailed, ValidationError


@pytest.mark.parametrize("current, action, expected", [
    ("placed", "process", RetailStatus.PROCESSED),
    ("placed", "dispatch", RetailStatus.OUT_FOR_DELIVERY),
    ("processed", "dispatch", RetailStatus.OUT_FOR_DELIVERY),
    ("out_for_delivery", "deliver", RetailStatus.DELIVERED),
    ("placed", "cancel", RetailStatus.CANCELLED),
    ("processed", "cancel", RetailStatus.CANCELLED),
])
def test_retail_transitions_by_retailer(current, action, expected):
    assert next_status("retail", current, action, "retailer") == expected


def test_customer_cannot_advance_retail_order():
    with pytest.raises(Forbidden):
        next_status(OrderClass.RETAIL, RetailStatus.PLACED, Action.PROCESS, "customer")


def test_cannot_cancel_once_out_for_delivery():
    with pytest.raises(PreconditionFailed):
        next_status("retail", "out_for_delivery", "cancel", "retailer")


@pytest.mark.parametrize("current, action, role, expected", [
    ("pending", "approve", "wholesaler", StockStatus.APPROVED),
    ("pending", "reject", "wholesaler", StockStatus.REJECTED),
    ("pending", "cancel", "wholesaler", StockStatus.CANCELLED),
    ("pending", "cancel", "retailer", StockStatus.CANCELLED),
    ("approved", "confirm", "retailer", StockStatus.ORDER_CONFIRMED),
    ("order_confirmed", "ship", "wholesaler", StockStatus.SHIPPED),
    ("shipped", "deliver", "wholesaler", StockStatus.DELIVERED),
    ("delivered", "receive", "retailer", StockStatus.RECEIVED_IN_INVENTORY),
])
def test_stock_transitions(current, action, role, expected):
    assert next_status("stock", current, action, role) == expected


@pytest.mark.parametrize("current, action, role", [
    ("pending", "approve", "retailer"),
    ("approved", "confirm", "wholesaler"),
    ("delivered", "receive", "wholesaler"),
])
def test_stock_transition_wrong_actor(current, action, role):
    with pytest.raises(Forbidden):
        next_status("stock", current, action, role)


def test_shipping_pending_order_is_refused():
    with pytest.raises(PreconditionFailed):
        next_status("stock", "pending", "ship", "wholesaler")


def test_delivering_twice_is_refused():
    with pytest.raises(PreconditionFailed):
        next_status("stock", "delivered", "deliver", "wholesaler")


@pytest.mark.parametrize("order_class", list(OrderClass))
def test_terminal_statuses_accept_no_action(order_class):
    for status in TERMINAL_STATUSES[order_class]:
        assert is_terminal(order_class, status)
        for action in Action:
            for role in ("customer", "retailer", "wholesaler"):
                with pytest.raises(PreconditionFailed):
                    next_status(order_class, status, action, role)


def test_vocabularies_are_disjoint_per_class():
    with pytest.raises(ValidationError):
        parse_status(OrderClass.RETAIL, "approved")
    with pytest.raises(ValidationError):
        parse_status(OrderClass.STOCK, "out_for_delivery")


def test_unknown_action_is_a_validation_error():
    with pytest.raises(ValidationError):
        next_status("stock", "pending", "teleport", "wholesaler")


def test_allowed_actions_per_role():
    assert allowed_actions(OrderClass.STOCK, "pending", "wholesaler") == [
        Action.APPROVE, Action.REJECT, Action.CANCEL
    ]
    assert allowed_actions(OrderClass.STOCK, "pending", "retailer") == [Action.CANCEL]
    assert allowed_actions(OrderClass.RETAIL, "placed", "customer") == []
    assert allowed_actions(OrderClass.RETAIL, "delivered", "retailer") == []
