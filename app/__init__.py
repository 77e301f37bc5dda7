"""
                Gate Delivery Ordering

Backend for airport food delivery: travelers order from the menu for
delivery to their gate, staff follow orders live through the fulfillment
pipeline, administrators manage the catalog.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
