"""
Wallet pass pipeline: credentials -> descriptor -> archive -> signature -> pkpass.
"""
