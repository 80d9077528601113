"""
                Tableside Ordering Engine

Client-side session and order-synchronization engine for a QR table-ordering
restaurant app: guests build a cart, verify by OTP, place orders and follow
them through the kitchen and billing pipeline used by chefs and admins.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
