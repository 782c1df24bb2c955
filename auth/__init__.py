"""auth/ -- Credential and verification-token lifecycle for AG Billing.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core.config for the Settings type. It does NOT import from api/.
api/ and main.py import from auth/, not the other way around.
"""
