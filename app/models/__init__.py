from .room import Room, Subroom, RoomVersion, RoomRole, RoomUserRole, RoomReport
from .audit import RoomAuditEvent
from .notification import AccountNotification
from .image import Image

__all__ = [
    "Room",
    "Subroom",
    "RoomVersion",
    "RoomRole",
    "RoomUserRole",
    "RoomReport",
    "RoomAuditEvent",
    "AccountNotification",
    "Image",
]
