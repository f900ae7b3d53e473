"""auth/ -- Accounts, one-time codes, and sessions for Priorly.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ only.
It does NOT import from api/ or todo/.
api/ imports from auth/, not the other way around.
"""
