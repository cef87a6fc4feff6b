"""Shared Flask extensions for the application."""
from __future__ import annotations

from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy database instance shared across the app.
db = SQLAlchemy()

# Real-time chat transport, bound to the app in create_app().
socketio = SocketIO()
