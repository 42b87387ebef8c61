"""Domain services for the order lifecycle and the ingredient stock ledger."""
