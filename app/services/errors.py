# app/services/errors.py
"""
ルーム系サービスのドメイン例外。

HTTP 層（main.py の例外ハンドラ）が status_code / code をそのままレスポンスに使う。
"""


class RoomError(Exception):
    status_code = 500
    code = "internal_error"
    message = "An internal error occurred and we could not serve your request."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# -----------------------------
# 400 系
# -----------------------------

class InvalidInput(RoomError):
    status_code = 400
    code = "invalid_input"
    message = "One or more parameters of your request are invalid."


class InvalidMetadata(InvalidInput):
    code = "invalid_metadata"
    message = "The version metadata is not specified or is invalid."


class ReservedRoleName(InvalidInput):
    code = "reserved_role_name"
    message = "The roles 'owner' and 'everyone' are reserved."


class PermissionDenied(RoomError):
    status_code = 403
    code = "access_denied"
    message = "Access denied."


# -----------------------------
# 404 系
# -----------------------------

class NotFound(RoomError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class RoomNotFound(NotFound):
    code = "room_not_found"
    message = "Room not found."


class SubroomNotFound(NotFound):
    code = "nonexistent_subroom"
    message = "No subroom found with that ID."


class VersionNotFound(NotFound):
    code = "version_not_found"
    message = "No version of this room exists with that ID."


class RoleNotFound(NotFound):
    code = "role_not_found"
    message = "No role with that name exists."


class ImageNotFound(NotFound):
    code = "image_not_found"
    message = "No image exists with that ID."


# -----------------------------
# 409 系
# -----------------------------

class Conflict(RoomError):
    status_code = 409
    code = "conflict"
    message = "The request conflicts with the current state of the room."


class RoomAlreadyExists(Conflict):
    code = "room_already_exists"
    message = "You have already created a room with that name."


class SubroomAlreadyExists(Conflict):
    code = "subroom_already_exists"
    message = "A subroom with that name already exists."


class RoleAlreadyExists(Conflict):
    code = "role_already_exists"
    message = "Cannot create a role with the same name as one that already exists."


class FileAlreadyAssociated(Conflict):
    code = "file_already_associated"
    message = "There is already a file associated with this version. Try making a new one."


class ConcurrentModification(Conflict):
    code = "concurrent_modification"
    message = "The room was modified by another request. Please retry."


# -----------------------------
# 500
# -----------------------------

class InternalError(RoomError):
    pass


# -----------------------------
# エラーではないシグナル
# -----------------------------

class NoFileForVersion(Exception):
    """バージョンにデータが紐付いていない（取得するものが無い）ことを示す。"""

    code = "no_file_associated_with_version"
    message = (
        "There is no file associated with this version, "
        "so loading the room objects is unnecessary."
    )

    def __init__(self, subroom_name: str, version_index: int):
        self.subroom_name = subroom_name
        self.version_index = version_index
        super().__init__(self.message)
