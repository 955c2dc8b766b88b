"""
aiexpense - turns free-text expense messages into normalized,
currency-converted, cost-accounted expense records.
"""

__version__ = "0.1.0"
