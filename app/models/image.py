# app/models/image.py
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from ..db import Base


class Image(Base):
    """
    写真のメタデータ。アップロード自体は画像サービス側の担当で、
    ここではカバー画像の設定時に参照するだけ。
    """

    __tablename__ = "images"

    id = Column(Integer, primary_key=True)
    taken_by = Column(String, nullable=True)
    taken_in_room_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
