"""Shipping module -- shipments, tracking events, NetParcel client, and helpers."""
