"""registry/ -- Client for the external OASIS membership registry.

Layer rule: registry/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or auth/. auth/ imports from registry/, not the
other way around.
"""
