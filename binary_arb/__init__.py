"""binary_arb: strategy decision core for binary YES/NO prediction markets.

Two strategies share one contract: the hosting engine builds a
``StrategyContext`` each cycle, awaits ``executor.execute(context)`` and
receives either a ``StrategySignal`` or ``None``.

Usage::

    from binary_arb.registry import build_default_registry
    from binary_arb.config import load_settings

    registry = build_default_registry(load_settings())
    signal = await registry.get("arbitrage").execute(context)
"""
