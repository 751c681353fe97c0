"""Volatility-smile arbitrage.

Prices daily "BTC above $K" digital markets off the Deribit IV surface and
trades the prediction venue when its quotes stray from that fair value.
"""
