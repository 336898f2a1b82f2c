"""HTTP clients for calls between StockWatch services."""
