"""SheetChain: a simulated EVM network backed by a tabular store."""

__version__ = "0.1.0"
