"""core/ -- Kernel: configuration shared by every entry point.

Layer rule: core/ may not import from auth/ or main.py.
"""
