"""
txnbench: synthetic transactions for partitioned key-value store benchmarks

Transactions declare their readset and writeset up front, and random
generators confine multi-key transactions to an exact number of
partitions.
"""

__version__ = "0.1.0"
