"""Invoicing module -- invoices, line items, tax helpers, and Stripe billing."""
