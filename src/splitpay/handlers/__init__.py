from splitpay.handlers.basic import basic_router
from splitpay.handlers.expenses import expenses_router
from splitpay.handlers.groups import groups_router

__all__ = ["basic_router", "expenses_router", "groups_router"]
