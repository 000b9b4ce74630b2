"""
QA Board
Blueprint registry.
"""
