"""Domain services for the points ledger and claim tickets."""
