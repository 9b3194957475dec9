"""
Timed multiple-choice trivia game.
"""
