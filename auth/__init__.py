"""
auth/ -- Local accounts, login decision and OASIS session handling.

Layer rule: auth/ imports from core/ and registry/ plus stdlib and
third-party libraries. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
