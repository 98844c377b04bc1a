"""
naptan2sqlite: NaPTAN access-nodes CSV to SQLite stops database.
"""

__version__ = "0.1.0"
