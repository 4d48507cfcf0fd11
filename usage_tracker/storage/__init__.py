"""
Storage layer: SQLite ledger of usage records.
"""
