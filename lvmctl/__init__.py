"""
lvmctl - LVM volume group and logical volume management.

This package drives the `lvm` command-line tool: it runs lvm subcommands,
classifies their failures, decodes lv_attr flags and parses report output
into volume group and logical volume objects.
"""

__version__ = "0.1.0"
__all__ = ["cli", "lib"]
