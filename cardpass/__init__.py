"""
cardpass: signed Apple Wallet passes for business cards.
"""
__version__ = "0.1.0"
