"""
Pharmacy POS order-entry core.

The interesting part lives in ``pharmacy_pos.modules.pos``: the engine that
keeps the terminal's current sale in step with the sale service.
"""

__version__ = "0.1.0"
