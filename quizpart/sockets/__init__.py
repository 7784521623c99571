"""
Sockets Package
"""
from quizpart.sockets.attempt_events import attempt_room, register_socket_events

__all__ = ['attempt_room', 'register_socket_events']
