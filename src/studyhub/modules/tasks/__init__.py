"""
Tasks module - student tasks and their deadline reminders.
"""
