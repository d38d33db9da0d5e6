"""Global search module -- one query across customers, deals, products, and invoices."""
