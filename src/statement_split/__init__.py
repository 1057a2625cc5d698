"""
Statement Split

Splits aggregated card statement settlements into itemized ledger entries.
"""

__version__ = "0.1.0"
