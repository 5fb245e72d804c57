"""
database — user store.

  • models.py  → SQLAlchemy ``User`` model
  • session.py → async engine and ``get_db_session`` dependency
  • helpers.py → upsert / soft-delete / terms withdrawal
"""
