"""
Domain services.

Each module wraps an ``AsyncSession`` with the rules of one area of the
platform. Route handlers call these functions; they never touch the ORM
directly. Pure calculators (distance, tax, reward tables, license dates) live
beside the database helpers that use them so they can be unit tested alone.
"""
