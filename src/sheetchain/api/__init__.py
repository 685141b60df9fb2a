"""HTTP API for the SheetChain RPC node."""
