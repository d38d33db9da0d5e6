"""Company profile module."""
