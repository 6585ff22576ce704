"""
Live vendor directory.

Holds published vendor profiles. Discovery promotes approved staged
vendors into this table.
"""
