import os

from app import create_app

# Create the Flask app
app, socketio = create_app()

if __name__ == '__main__':
    socketio.run(app, host='0.0.0.0', port=int(os.getenv("PORT", 5054)), debug=app.config.get("DEBUG_MODE", False))
