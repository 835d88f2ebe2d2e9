# socketio_events.py

from flask import current_app
from flask_socketio import SocketIO, join_room, leave_room, emit

from utils.realtime import owner_room
from utils.timeutils import utc_now

ADMIN_ROOM = "campaigns_admin"


def _ts():
    return utc_now().isoformat().replace("+00:00", "Z")


def register_socketio_events(socketio: SocketIO):
    """
    Register WebSocket events. Campaign owners join their own room to
    receive `campaign_status` updates; admins join the admin room.
    """

    @socketio.on("connect")
    def handle_connect():
        current_app.logger.info("Client connected to WebSocket")
        emit("server_hello", {"ts": _ts()})

    @socketio.on("disconnect")
    def handle_disconnect():
        current_app.logger.info("Client disconnected from WebSocket")

    @socketio.on("connect_owner")
    def handle_owner_connect(data=None):
        """
        Example client emit:
            socket.emit("connect_owner", { owner_id: 42 });
        """
        owner_id = (data or {}).get("owner_id")
        if not owner_id:
            current_app.logger.warning("connect_owner called without owner_id")
            return
        room = owner_room(owner_id)
        join_room(room)
        current_app.logger.info(f"Owner {owner_id} joined {room}")
        emit("owner_connected", {"owner_id": owner_id, "ts": _ts()}, room=room)

    @socketio.on("disconnect_owner")
    def handle_owner_disconnect(data=None):
        owner_id = (data or {}).get("owner_id")
        if owner_id:
            leave_room(owner_room(owner_id))

    @socketio.on("connect_admin")
    def handle_admin_connect(data=None):
        join_room(ADMIN_ROOM)
        current_app.logger.info(f"Admin joined {ADMIN_ROOM}")
        emit("admin_connected", {"ts": _ts()}, room=ADMIN_ROOM)

    @socketio.on("ping_health")
    def handle_ping_health(payload=None):
        data = payload or {}
        emit("pong_health", {"status": "ok", "nonce": data.get("nonce"), "server_ts": _ts()})
