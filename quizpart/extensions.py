"""
Flask Extensions
Centralized extension initialization
"""
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO

# Initialize extensions (without app binding)
db = SQLAlchemy()
socketio = SocketIO()

# Live attempts keyed by (widget_id, user_id), managed by AttemptRegistry
active_attempts = {}
