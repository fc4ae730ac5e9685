"""Process entry point: builds the app and serves HTTP and Socket.IO on one port.

    python backend/run.py
"""
from __future__ import annotations
import os

from repairshop import create_app, socketio


def main():
    app = create_app()
    dispatcher = app.extensions['notifications']
    try:
        socketio.run(
            app,
            host=os.getenv('HOST', '0.0.0.0'),
            port=int(os.getenv('PORT', '5000')),
            allow_unsafe_werkzeug=True,
        )
    finally:
        # later emits become no-ops instead of touching a dead server
        dispatcher.close()
        app.logger.info('notification dispatcher closed')


if __name__ == '__main__':
    main()
