"""
Study Quiz Bot - document summaries and timed quizzes for Discord.
"""
