# app/services/notifications.py
import threading
import uuid
from collections import deque
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..logging_config import get_logger
from ..models.notification import AccountNotification

logger = get_logger(__name__)

# ライブ接続へ送るイベント名
PERMISSION_UPDATE_EVENT = "permission-update"
URGENT_NOTIFICATION_EVENT = "urgent_notification_recieved"

# 1アカウントあたりに溜めておくイベント数の上限（古いものから捨てる）
MAX_QUEUED_EVENTS = 100


class LiveConnectionRegistry:
    """
    アカウントごとのライブ接続への送信口。

    このプロセスが持つ接続分だけを管理する（インスタンスごとにメモリ上）。
    実際の WebSocket への書き出しは配送側が drain() で取り出して行う。
    同期ルートはスレッドプールで動くので、操作はすべてロックの内側で行う。
    """

    def __init__(self, max_events_per_account: int = MAX_QUEUED_EVENTS):
        self.max_events_per_account = max_events_per_account
        self.outbox: dict[str, deque[dict[str, Any]]] = {}
        self.closed: set[str] = set()
        self._lock = threading.Lock()

    def emit(self, account_id: str, event: str, data: Any = None) -> None:
        with self._lock:
            queue = self.outbox.get(account_id)
            if queue is None:
                queue = deque(maxlen=self.max_events_per_account)
                self.outbox[account_id] = queue
            if len(queue) == queue.maxlen:
                logger.warning(f"Live outbox of account {account_id} is full, dropping oldest event")
            queue.append({"event": event, "data": data})
        logger.debug(f"Queued live event {event} for account {account_id}")

    def close(self, account_id: str) -> None:
        with self._lock:
            self.closed.add(account_id)
        logger.info(f"Closing live connection of account {account_id}")

    def drain(self, account_id: str) -> list[dict[str, Any]]:
        """溜まったイベントを取り出す。切断要求もここで処理済みにする。"""
        with self._lock:
            queue = self.outbox.pop(account_id, None)
            self.closed.discard(account_id)
        return list(queue) if queue else []


class Notifier:
    """通知箱への保存 + ライブ接続への通知。"""

    def __init__(self, db: Session, live: LiveConnectionRegistry):
        self.db = db
        self.live = live

    def notify(self, account_id: str, template: str, parameters: dict[str, Any]) -> None:
        notification = AccountNotification(
            id=str(uuid.uuid4()),
            account_id=account_id,
            template=template,
            parameters=parameters,
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Failed to store notification {template} for {account_id}: {exc}", exc_info=True)

    def list_for(self, account_id: str) -> list[AccountNotification]:
        return (
            self.db.query(AccountNotification)
            .filter(AccountNotification.account_id == account_id)
            .order_by(AccountNotification.created_at)
            .all()
        )

    def permission_update(self, account_id: str, room_id: str) -> None:
        self.live.emit(account_id, PERMISSION_UPDATE_EVENT, room_id)

    def urgent(self, account_id: str, *, close: bool = False) -> None:
        self.live.emit(account_id, URGENT_NOTIFICATION_EVENT, {})
        if close:
            self.live.close(account_id)
