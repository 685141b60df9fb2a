"""Cross-chain bridge: event capture, durable pending store and settlement."""
