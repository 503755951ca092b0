# bgchooser/api/push.py
"""
プッシュ更新チャネル（WebSocket）。
接続直後に "register:{room_id}" を送り、以降はサーバーから JSON の更新メッセージが届く。
再接続はしない。エラーはそのまま PushChannelError として呼び出し元へ。
"""
import json
import logging
from collections.abc import Iterator
from typing import Optional, Protocol

from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedOK, WebSocketException
from websockets.sync.client import connect

from ..config import Settings, get_settings
from ..errors import PushChannelError
from ..schemas.updates import SubscriptionMessage

logger = logging.getLogger(__name__)


class Connection(Protocol):
    def send(self, message: str) -> None: ...

    def recv(self) -> str: ...

    def close(self) -> None: ...


class PushChannel:
    def __init__(self, connection: Connection):
        self.connection = connection
        self.room_id: Optional[str] = None

    @classmethod
    def connect(cls, settings: Optional[Settings] = None) -> "PushChannel":
        settings = settings or get_settings()
        try:
            conn = connect(settings.ws_url, open_timeout=settings.http_timeout_sec)
        except (OSError, WebSocketException) as e:
            raise PushChannelError(f"failed to connect to {settings.ws_url}: {e}") from e
        return cls(conn)

    def register(self, room_id: str) -> None:
        try:
            self.connection.send(f"register:{room_id}")
        except (OSError, WebSocketException) as e:
            raise PushChannelError(str(e)) from e
        self.room_id = room_id
        logger.info("push channel registered for room %s", room_id)

    def messages(self) -> Iterator[SubscriptionMessage]:
        """チャネルが正常に閉じられるまでメッセージを返し続ける。"""
        while True:
            try:
                raw = self.connection.recv()
            except ConnectionClosedOK:
                logger.info("push channel closed (room %s)", self.room_id)
                return
            except (OSError, WebSocketException) as e:
                raise PushChannelError(str(e)) from e

            yield self.decode(raw)

    @staticmethod
    def decode(raw: str | bytes) -> SubscriptionMessage:
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return SubscriptionMessage.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise PushChannelError(f"malformed push message: {raw!r}") from e

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "PushChannel":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
