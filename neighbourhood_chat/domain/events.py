# neighbourhood_chat/domain/events.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class Event(BaseModel):
    pass


class MessageEvent(Event):
    group_id: str
    sender_id: str
    message: dict[str, Any]


class NewMessage(MessageEvent):
    pass


class MessageSent(MessageEvent):
    pass


class NotificationUpdated(Event):
    recipient_id: str
    chat_id: str
    chat_type: str = "group"
    chat_name: str
    sender_id: str
    sender_name: str
    message_id: str
    timestamp: datetime

    def payload(self) -> dict[str, Any]:
        return {
            "type": "new_message",
            "chatId": self.chat_id,
            "chatType": self.chat_type,
            "chatName": self.chat_name,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "messageId": self.message_id,
            "timestamp": self.timestamp,
        }
