"""
Production WSGI Entry Point
Used by gunicorn and other WSGI servers
"""
import os
from quizpart import create_app
from quizpart.extensions import socketio

# Create Flask app
app = create_app()

# For development server
if __name__ == '__main__':
    # In production, use: gunicorn --worker-class gthread -w 1 wsgi:app
    port = int(os.getenv('PORT', 5000))

    socketio.run(
        app,
        host='0.0.0.0',
        port=port,
        debug=app.config.get('DEBUG', False),
        use_reloader=False
    )
