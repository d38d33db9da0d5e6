"""Deal management module -- pipeline stages, deals, and DealRepository."""
