"""Invoice number generation for rental payments."""
from datetime import datetime


def initial_invoice_number(order_id: int, issued_at: datetime) -> str:
    """INV-YYYYMMDD-<order id>; one initial invoice per order."""
    return f"INV-{issued_at.strftime('%Y%m%d')}-{order_id}"


def monthly_invoice_number(subscription_id: int, issued_at: datetime, sequence: int) -> str:
    """INV-M-YYYYMMDD-<subscription id>-<n>, n counting that subscription's monthly bills."""
    return f"INV-M-{issued_at.strftime('%Y%m%d')}-{subscription_id}-{sequence}"
