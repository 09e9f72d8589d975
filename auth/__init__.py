"""auth/ -- Credential verification and session authorization core for Gatekeeper.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core.config for the Settings type. It does NOT import from main.py.
Request-handling layers import from auth/, not the other way around.
"""
