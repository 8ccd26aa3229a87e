"""
Workers module - working professionals' goals, reminders and progress.
"""
