"""Service layer: ledger, transactions, claims, contract simulation, RPC and bridge."""
