"""Platewise API: points ledger and time-bounded claim tickets."""
