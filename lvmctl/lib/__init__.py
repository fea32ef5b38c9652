"""
Core LVM layer: process invocation, error classification, lv_attr decoding,
report parsing and the volume group / logical volume model.
"""
