"""
Command-line interface for lvmctl.
"""
