"""
Users module - platform accounts used for notification addressing.
"""
