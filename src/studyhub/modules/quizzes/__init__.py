"""
Quizzes module - teacher-assigned quizzes and student submissions.
"""
