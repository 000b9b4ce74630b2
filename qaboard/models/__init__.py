"""
QA Board
SQLAlchemy models package.

The ``db`` instance is created here and bound to the app in ``create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
