"""
Taskflow — SQLAlchemy models.

The shared ``db`` instance lives here so every model module and service can
import it without touching the application factory.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
