"""
Order lifecycle state machines

Retail orders (customer -> retailer) and stock orders (retailer -> wholesaler)
share one record shape but use disjoint status vocabularies. Every legal move
is one row of TRANSITIONS; next_status() is the only place a new status is
decided, so a status can never change without passing through this table.
"""
from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Tuple, Union

from utils.errors import Forbidden, PreconditionFailed, ValidationError


class OrderClass(str, Enum):
    RETAIL = "retail"
    STOCK = "stock"


class Role(str, Enum):
    CUSTOMER = "customer"
    RETAILER = "retailer"
    WHOLESALER = "wholesaler"
    ADMIN = "admin"


class RetailStatus(str, Enum):
    PLACED = "placed"
    PROCESSED = "processed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class StockStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ORDER_CONFIRMED = "order_confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RECEIVED_IN_INVENTORY = "received_in_inventory"


class Action(str, Enum):
    # retail
    PROCESS = "process"
    DISPATCH = "dispatch"
    # stock
    APPROVE = "approve"
    REJECT = "reject"
    CONFIRM = "confirm"
    SHIP = "ship"
    RECEIVE = "receive"
    # both
    DELIVER = "deliver"
    CANCEL = "cancel"


class PaymentMethod(str, Enum):
    ONLINE = "online"
    CASH_ON_DELIVERY = "cash_on_delivery"
    PAY_AT_STORE = "pay_at_store"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    # the gateway took the money but the order could no longer accept it
    REFUND_DUE = "refund_due"


OrderStatus = Union[RetailStatus, StockStatus]


class Transition(NamedTuple):
    target: OrderStatus
    actors: FrozenSet[Role]


_RETAILER = frozenset({Role.RETAILER})
_WHOLESALER = frozenset({Role.WHOLESALER})
_STOCK_PARTIES = frozenset({Role.RETAILER, Role.WHOLESALER})

TRANSITIONS: Dict[OrderClass, Dict[Tuple[OrderStatus, Action], Transition]] = {
    OrderClass.RETAIL: {
        (RetailStatus.PLACED, Action.PROCESS): Transition(RetailStatus.PROCESSED, _RETAILER),
        (RetailStatus.PLACED, Action.DISPATCH): Transition(RetailStatus.OUT_FOR_DELIVERY, _RETAILER),
        (RetailStatus.PROCESSED, Action.DISPATCH): Transition(RetailStatus.OUT_FOR_DELIVERY, _RETAILER),
        (RetailStatus.OUT_FOR_DELIVERY, Action.DELIVER): Transition(RetailStatus.DELIVERED, _RETAILER),
        (RetailStatus.PLACED, Action.CANCEL): Transition(RetailStatus.CANCELLED, _RETAILER),
        (RetailStatus.PROCESSED, Action.CANCEL): Transition(RetailStatus.CANCELLED, _RETAILER),
    },
    OrderClass.STOCK: {
        (StockStatus.PENDING, Action.APPROVE): Transition(StockStatus.APPROVED, _WHOLESALER),
        (StockStatus.PENDING, Action.REJECT): Transition(StockStatus.REJECTED, _WHOLESALER),
        (StockStatus.PENDING, Action.CANCEL): Transition(StockStatus.CANCELLED, _STOCK_PARTIES),
        (StockStatus.APPROVED, Action.CONFIRM): Transition(StockStatus.ORDER_CONFIRMED, _RETAILER),
        (StockStatus.ORDER_CONFIRMED, Action.SHIP): Transition(StockStatus.SHIPPED, _WHOLESALER),
        (StockStatus.SHIPPED, Action.DELIVER): Transition(StockStatus.DELIVERED, _WHOLESALER),
        (StockStatus.DELIVERED, Action.RECEIVE): Transition(StockStatus.RECEIVED_IN_INVENTORY, _RETAILER),
    },
}

INITIAL_STATUS: Dict[OrderClass, OrderStatus] = {
    OrderClass.RETAIL: RetailStatus.PLACED,
    OrderClass.STOCK: StockStatus.PENDING,
}

TERMINAL_STATUSES: Dict[OrderClass, FrozenSet[OrderStatus]] = {
    OrderClass.RETAIL: frozenset({RetailStatus.DELIVERED, RetailStatus.CANCELLED}),
    OrderClass.STOCK: frozenset({
        StockStatus.REJECTED,
        StockStatus.CANCELLED,
        StockStatus.RECEIVED_IN_INVENTORY,
    }),
}

# Rows removed by "clear completed", per order class (retailer view / wholesaler view)
CLEARABLE_STATUSES: Dict[OrderClass, FrozenSet[OrderStatus]] = {
    OrderClass.RETAIL: frozenset({RetailStatus.DELIVERED, RetailStatus.CANCELLED}),
    OrderClass.STOCK: frozenset({StockStatus.DELIVERED, StockStatus.CANCELLED, StockStatus.REJECTED}),
}

# Role of the counterparty who sells in each order class
SELLER_ROLE: Dict[OrderClass, Role] = {
    OrderClass.RETAIL: Role.RETAILER,
    OrderClass.STOCK: Role.WHOLESALER,
}
BUYER_ROLE: Dict[OrderClass, Role] = {
    OrderClass.RETAIL: Role.CUSTOMER,
    OrderClass.STOCK: Role.RETAILER,
}


def parse_order_class(value: Union[str, OrderClass]) -> OrderClass:
    try:
        return OrderClass(value)
    except ValueError:
        raise ValidationError(f"Unknown order class '{value}'")


def parse_status(order_class: OrderClass, value: Union[str, OrderStatus]) -> OrderStatus:
    """Map a stored status string onto the vocabulary of its order class"""
    vocabulary = RetailStatus if order_class == OrderClass.RETAIL else StockStatus
    try:
        return vocabulary(value)
    except ValueError:
        raise ValidationError(f"'{value}' is not a valid {order_class.value} order status")


def parse_role(value: Union[str, Role]) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise Forbidden(f"Unknown role '{value}'")


def is_terminal(order_class: OrderClass, status: Union[str, OrderStatus]) -> bool:
    return parse_status(order_class, status) in TERMINAL_STATUSES[order_class]


def allowed_actions(order_class: OrderClass, status: Union[str, OrderStatus], role: Union[str, Role]) -> list:
    """Actions the given role may take on an order in this status"""
    current = parse_status(order_class, status)
    role = parse_role(role)
    return [
        action
        for (source, action), transition in TRANSITIONS[order_class].items()
        if source == current and role in transition.actors
    ]


def next_status(
    order_class: Union[str, OrderClass],
    current: Union[str, OrderStatus],
    action: Union[str, Action],
    role: Union[str, Role],
) -> OrderStatus:
    """
    Decide the status an order moves to when `role` applies `action`.

    Raises PreconditionFailed when the action is not defined from `current`
    (this includes every terminal status) and Forbidden when the role is not
    an actor of that transition. Pure: nothing is read or written.
    """
    order_class = parse_order_class(order_class)
    current = parse_status(order_class, current)
    role = parse_role(role)
    try:
        action = Action(action)
    except ValueError:
        raise ValidationError(f"Unknown order action '{action}'")

    transition = TRANSITIONS[order_class].get((current, action))
    if transition is None:
        if current in TERMINAL_STATUSES[order_class]:
            raise PreconditionFailed(
                f"Order is already {current.value.replace('_', ' ')} and can no longer change"
            )
        raise PreconditionFailed(
            f"Cannot {action.value} an order that is {current.value.replace('_', ' ')}"
        )

    if role not in transition.actors:
        raise Forbidden(f"A {role.value} cannot {action.value} a {order_class.value} order")

    return transition.target
