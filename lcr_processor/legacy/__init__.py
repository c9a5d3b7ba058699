"""Access to the legacy challenge store (tcs_catalog)."""
