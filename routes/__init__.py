"""Routes package initializer."""

from .dashboard_routes import register_dashboard_routes
from .inventory_routes import register_inventory_routes
from .purchase_order_routes import register_purchase_order_routes
from .sales_order_routes import register_sales_order_routes

__all__ = [
    "register_purchase_order_routes",
    "register_sales_order_routes",
    "register_inventory_routes",
    "register_dashboard_routes",
]
