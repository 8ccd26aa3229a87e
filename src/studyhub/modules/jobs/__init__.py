"""
Jobs module - scheduled background job store, runner and trigger endpoints.
"""
