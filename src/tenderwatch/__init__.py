"""
TenderWatch - Tender and purchase-order tracker for Mercado Publico.

Tracks public-procurement tenders, discovers the purchase orders issued
against them by allow-listed suppliers, and notifies registered devices.
"""

__version__ = "0.1.0"
__app_name__ = "tenderwatch"
