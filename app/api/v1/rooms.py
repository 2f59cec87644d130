# app/api/v1/rooms.py

import base64
import binascii
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from ...api.deps import (
    get_audit_recorder,
    get_current_user,
    get_developer,
    get_moderation,
    get_optional_user,
    get_role_administration,
    get_room_service,
    get_room_store,
    get_version_ledger,
    room_permission,
)
from ...config import Settings, get_settings
from ...models.room import Room
from ...schemas.audit import AuditEventOut
from ...schemas.permissions import (
    PERMISSION_DESCRIPTIONS,
    MyPermissionsOut,
    PermissionsOut,
    RoleCreate,
    RolePermissionsUpdate,
)
from ...schemas.room import (
    ContentFlagsUpdate,
    DescriptionUpdate,
    NoteBody,
    ReportCreate,
    ReportOut,
    RoomCreate,
    RoomCreatedOut,
    RoomOut,
    RoomSearchItem,
    StatusOut,
    SubroomLinkOut,
    SubroomListOut,
    SubroomOut,
    TagsUpdate,
)
from ...schemas.version import (
    PublicVersionUpdate,
    VersionCreatedOut,
    VersionListOut,
    VersionOut,
)
from ...services.audit import AuditRecorder
from ...services.blob_store import OCTET_STREAM
from ...services.errors import InvalidInput, NoFileForVersion, RoomNotFound
from ...services.moderation import ModerationActions
from ...services.permissions import Actor, has_permission, resolve, resolve_role
from ...services.roles import RoleAdministration
from ...services.room_store import RoomStore
from ...services.rooms import RoomService
from ...services.versions import VersionLedger

router = APIRouter(
    prefix="/rooms",
    tags=["rooms"],
)


async def read_text_body(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> str:
    limit = settings.MAX_UPLOAD_BYTES
    too_large = InvalidInput(f"Request body exceeds the {limit} byte limit.")

    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        raise too_large

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise too_large
        chunks.append(chunk)

    try:
        return b"".join(chunks).decode("ascii")
    except UnicodeDecodeError as exc:
        raise InvalidInput("Your byte array could not be parsed into a valid ArrayBuffer.") from exc


def decode_base64_body(body: str) -> bytes:
    # 改行などで折り返された base64 も受け付ける
    compact = "".join(body.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInput("Your byte array could not be parsed into a valid ArrayBuffer.") from exc


def _parse_index(value: Any, name: str = "version") -> int:
    if isinstance(value, bool):
        raise InvalidInput(f"Parameter `{name}` is invalid, must be parsable as Integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Parameter `{name}` is invalid, must be parsable as Integer.") from exc


# -----------------------------
# 公開情報・検索・作成
# -----------------------------

@router.get("/all-permissions")
def list_all_permissions() -> dict[str, str]:
    return PERMISSION_DESCRIPTIONS


@router.get("/room/{id}/info", response_model=RoomOut)
def get_room_info(
    id: str,
    actor: Actor | None = Depends(get_optional_user),
    store: RoomStore = Depends(get_room_store),
):
    room = store.get(id)
    # 見えないルームは存在しないのと同じ扱い
    if room is None or not has_permission(room, actor, "viewAndJoin"):
        raise RoomNotFound()
    return room


@router.get("/search", response_model=list[RoomSearchItem])
def search_rooms(
    mode: str | None = None,
    query: str | None = None,
    actor: Actor | None = Depends(get_optional_user),
    rooms: RoomService = Depends(get_room_service),
):
    if mode == "mine" and actor is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return rooms.search(actor, mode, query)


@router.post("/new", response_model=RoomCreatedOut)
def create_room(
    data: RoomCreate,
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    room = rooms.create_room(actor.id, data.name)
    return RoomCreatedOut(id=room.id)


# -----------------------------
# バージョン
# -----------------------------

@router.get("/room/{id}/subrooms/{subroom_id}/versions", response_model=VersionListOut)
def list_versions(
    subroom_id: str,
    room: Room = Depends(room_permission("createVersions")),
    ledger: VersionLedger = Depends(get_version_ledger),
):
    versions = ledger.list_versions(room, subroom_id)
    return VersionListOut(versions=[VersionOut.from_version(v) for v in versions])


@router.put("/room/{id}/subrooms/{subroom_id}/versions/new", response_model=VersionCreatedOut)
def create_version(
    subroom_id: str,
    metadata: dict[str, Any] = Body(...),
    room: Room = Depends(room_permission("createVersions")),
    actor: Actor = Depends(get_current_user),
    ledger: VersionLedger = Depends(get_version_ledger),
):
    index = ledger.create_version(room, subroom_id, metadata, actor.id)
    return VersionCreatedOut(id=str(index))


@router.post("/room/{id}/subrooms/{subroom_id}/versions/public", response_model=StatusOut)
def set_public_version(
    subroom_id: str,
    data: PublicVersionUpdate,
    room: Room = Depends(room_permission("setPublicVersion")),
    actor: Actor = Depends(get_current_user),
    ledger: VersionLedger = Depends(get_version_ledger),
):
    index = _parse_index(data.id, "id")
    ledger.set_public_version(room, subroom_id, index, actor.id)
    return StatusOut(message="Operation successful")


@router.post(
    "/room/{id}/subrooms/{subroom_id}/versions/{version_id}/associate-data",
    response_model=StatusOut,
)
def associate_version_data(
    subroom_id: str,
    version_id: str,
    body: str = Depends(read_text_body),
    room: Room = Depends(room_permission("createVersions")),
    ledger: VersionLedger = Depends(get_version_ledger),
):
    index = _parse_index(version_id)
    payload = decode_base64_body(body)

    ledger.associate_data(room, subroom_id, index, payload)
    return StatusOut(message="Operation successful.")


@router.get("/room/{id}/subrooms/{subroom_id}/versions/{version_id}/download")
def download_version(
    subroom_id: str,
    version_id: str,
    room: Room = Depends(room_permission("viewAndJoin")),
    ledger: VersionLedger = Depends(get_version_ledger),
):
    try:
        target = ledger.resolve_download(room, subroom_id, version_id)
    except NoFileForVersion:
        # 取得するものが無いだけ（エラーではない）
        return Response(status_code=204)

    data = ledger.read_payload(target)
    return Response(
        content=data,
        media_type=OCTET_STREAM,
        headers={"X-Version-Id": str(target.version_index)},
    )


# -----------------------------
# ルームのメタデータ
# -----------------------------

@router.post("/room/{id}/tags", response_model=StatusOut)
def set_tags(
    data: TagsUpdate,
    room: Room = Depends(room_permission("manageTags")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.set_tags(room, data.tags, actor)
    return StatusOut()


@router.post("/room/{id}/description", response_model=StatusOut)
def set_description(
    data: DescriptionUpdate,
    room: Room = Depends(room_permission("editDescription")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.set_description(room, data.description, actor)
    return StatusOut()


@router.post("/room/{id}/content_flags", response_model=StatusOut)
def set_content_flags(
    data: ContentFlagsUpdate,
    room: Room = Depends(room_permission("manageContentFlags")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.set_content_flags(room, data.flags, actor)
    return StatusOut()


@router.post("/room/{id}/cover-image/set/{image_id}", response_model=StatusOut)
def set_cover_image(
    image_id: str,
    room: Room = Depends(room_permission("setRoomPhoto")),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.set_cover_image(room, image_id)
    return StatusOut(message="Successfully set room image!")


# -----------------------------
# ロール・権限
# -----------------------------

@router.put("/room/{id}/roles/new", response_model=StatusOut)
def create_role(
    data: RoleCreate,
    room: Room = Depends(room_permission("managePermissions")),
    actor: Actor = Depends(get_current_user),
    roles: RoleAdministration = Depends(get_role_administration),
):
    roles.create_role(room, data.name, actor)
    return StatusOut(message="Successfully created role.")


@router.post("/room/{id}/roles/{role_name}/update", response_model=StatusOut)
def update_role_permissions(
    role_name: str,
    data: RolePermissionsUpdate,
    room: Room = Depends(room_permission("managePermissions")),
    actor: Actor = Depends(get_current_user),
    roles: RoleAdministration = Depends(get_role_administration),
):
    roles.update_permissions(room, role_name, actor, data.permissions)
    return StatusOut()


@router.post("/room/{id}/roles/{role_name}/delete", response_model=StatusOut)
def delete_role(
    role_name: str,
    room: Room = Depends(room_permission("managePermissions")),
    actor: Actor = Depends(get_current_user),
    roles: RoleAdministration = Depends(get_role_administration),
):
    roles.delete_role(room, role_name, actor)
    return StatusOut()


@router.post("/room/{id}/user/{user_id}/set-role/{role_name}", response_model=StatusOut)
def set_user_role(
    user_id: str,
    role_name: str,
    room: Room = Depends(room_permission("managePermissions")),
    actor: Actor = Depends(get_current_user),
    roles: RoleAdministration = Depends(get_role_administration),
):
    roles.set_user_role(room, actor, user_id, role_name)
    return StatusOut()


@router.get("/room/{id}/permissions", response_model=PermissionsOut)
def get_room_permissions(
    room: Room = Depends(room_permission("viewPermissions")),
    roles: RoleAdministration = Depends(get_role_administration),
):
    users, role_map = roles.list_permissions(room)
    return PermissionsOut(users=users, roles=role_map)


@router.get("/room/{id}/my-permissions", response_model=MyPermissionsOut)
def get_my_permissions(
    room: Room = Depends(room_permission("viewAndJoin")),
    actor: Actor = Depends(get_current_user),
):
    role = resolve_role(room, actor.id)
    return MyPermissionsOut(role=role.name, permissions=resolve(room, actor.id).to_dict())


# -----------------------------
# サブルーム
# -----------------------------

@router.get("/room/{id}/subrooms/list", response_model=SubroomListOut)
def list_subrooms(
    room: Room = Depends(room_permission("manageSubrooms")),
):
    return SubroomListOut(data={s.name: SubroomOut.from_subroom(s) for s in room.subrooms})


@router.get("/room/{id}/verify-subroom-link/{to}", response_model=SubroomLinkOut)
def verify_subroom_link(
    to: str,
    room: Room = Depends(room_permission("viewAndJoin")),
):
    if room.get_subroom(to) is None:
        return JSONResponse(
            status_code=404,
            content={"code": "not_found", "message": "No subroom with that ID exists!", "valid": False},
        )
    return SubroomLinkOut(code="success", message="This subroom link is valid.", valid=True)


@router.post("/room/{id}/subrooms/{name}/create", response_model=StatusOut)
def create_subroom(
    name: str,
    data: NoteBody | None = None,
    room: Room = Depends(room_permission("manageSubrooms")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.create_subroom(room, name, actor, note=data.note if data else None)
    return StatusOut()


@router.post("/room/{id}/subrooms/{name}/delete", response_model=StatusOut)
def delete_subroom(
    name: str,
    room: Room = Depends(room_permission("deleteSubrooms")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.delete_subroom(room, name, actor)
    return StatusOut()


@router.post("/room/{id}/subrooms/{name}/set-max-players/{count}", response_model=StatusOut)
def set_subroom_max_players(
    name: str,
    count: str,
    room: Room = Depends(room_permission("manageSubrooms")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.set_max_players(room, name, count, actor)
    return StatusOut()


@router.post("/room/{id}/set-home-subroom/{name}", response_model=StatusOut)
def set_home_subroom(
    name: str,
    room: Room = Depends(room_permission("setHomeSubroom")),
    actor: Actor = Depends(get_current_user),
    rooms: RoomService = Depends(get_room_service),
):
    rooms.set_home_subroom(room, name, actor)
    return StatusOut()


# -----------------------------
# 通報・モデレーション
# -----------------------------

@router.post("/room/{id}/report", response_model=ReportOut)
def report_room(
    id: str,
    data: ReportCreate,
    actor: Actor = Depends(get_current_user),
    store: RoomStore = Depends(get_room_store),
    moderation: ModerationActions = Depends(get_moderation),
):
    room = store.get(id)
    if room is None or not has_permission(room, actor, "viewAndJoin"):
        raise RoomNotFound()
    severity = moderation.report(room, actor.id, data.reason, data.illegal_content, data.danger_of_harm)
    return ReportOut(message="Successfully reported room.", severity=severity.value)


@router.post("/room/{id}/moderation-suspend", response_model=StatusOut)
def moderation_suspend(
    id: str,
    data: NoteBody | None = None,
    actor: Actor = Depends(get_developer),
    store: RoomStore = Depends(get_room_store),
    moderation: ModerationActions = Depends(get_moderation),
):
    room = store.load(id)
    moderation.suspend(room, actor, note=data.note if data else None)
    return StatusOut()


@router.post("/room/{id}/moderation-terminate", response_model=StatusOut)
def moderation_terminate(
    id: str,
    permanent: bool = False,
    data: NoteBody | None = None,
    actor: Actor = Depends(get_developer),
    store: RoomStore = Depends(get_room_store),
    moderation: ModerationActions = Depends(get_moderation),
):
    room = store.load(id)
    moderation.terminate(room, actor, note=data.note if data else None, permanent=permanent)
    if permanent:
        return StatusOut(message="Room wiped entirely from database.")
    return StatusOut()


@router.get("/room/{id}/audit", response_model=list[AuditEventOut])
def get_room_audit(
    id: str,
    actor: Actor = Depends(get_developer),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return audit.list_events(id)
