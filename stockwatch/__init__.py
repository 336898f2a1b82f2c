"""
StockWatch inventory management services.

Auth, inventory, vendor and notification services sharing one relational
schema, with a low-stock sweep and a realtime notification channel.
"""

__version__ = "0.1.0"
