"""
                        Services Module

Contains the ordering core with the hybrid architecture pattern.

Services:
    - order_store: authoritative SQL order records
    - catalog: menu products
    - live_feed: in-memory (development) or Redis (production) mirror
    - orders: order service orchestrating the dual write
"""
