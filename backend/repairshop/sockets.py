"""Socket.IO connection handlers.

A connection authenticates once, at handshake, with the same bearer token the
REST API accepts (``auth={'token': ...}`` or an ``Authorization`` header), and
joins its user's room. Nothing is received from clients after that.
"""
from __future__ import annotations
from typing import Optional

from flask import current_app, request
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from flask_socketio import join_room, emit
from jwt.exceptions import PyJWTError

from repairshop.services.notifications import EVENT_READY, user_room


def _handshake_token(auth) -> Optional[str]:
    if isinstance(auth, dict) and auth.get('token'):
        return auth['token']
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[7:]
    return None


def register_socket_handlers(socketio):
    @socketio.on('connect')
    def on_connect(auth=None):
        token = _handshake_token(auth)
        if not token:
            current_app.logger.info('socket rejected sid=%s: no token', request.sid)
            return False
        try:
            claims = decode_token(token)
        except (JWTExtendedException, PyJWTError):
            current_app.logger.info('socket rejected sid=%s: invalid token', request.sid)
            return False
        user_id = claims.get('sub')
        if not user_id:
            return False
        join_room(user_room(int(user_id)))
        current_app.logger.info('socket connected sid=%s userId=%s', request.sid, user_id)
        emit(EVENT_READY, {'ok': True})

    @socketio.on('disconnect')
    def on_disconnect(*args):
        current_app.logger.info('socket disconnected sid=%s', request.sid)
