# neighbourhood_chat/gateways/interfaces.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from neighbourhood_chat.domain.entities import PopulatedMessage
from neighbourhood_chat.infrastructure.uow import UoWModel


class IUserGateway(ABC):
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_users(self, user_ids: List[str]) -> Dict[str, Any]:
        pass


class IGroupGateway(ABC):
    @abstractmethod
    async def get_active_group(self, group_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_group_for_member(self, group_id: str, user_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def list_for_member(self, user_id: str) -> List[UoWModel]:
        pass

    @abstractmethod
    async def name_taken(self, neighbourhood_id: str, name: str) -> bool:
        pass

    @abstractmethod
    async def create_group(
        self,
        neighbourhood_id: str,
        name: str,
        description: str,
        group_type: str,
        creator_id: str,
    ) -> UoWModel:
        pass

    @abstractmethod
    async def add_member(self, group: UoWModel, user_id: str, role: str = "member") -> UoWModel:
        pass

    @abstractmethod
    async def remove_member(self, group: UoWModel, user_id: str) -> UoWModel:
        pass

    @abstractmethod
    async def touch_activity(self, group_id: str, when: datetime) -> None:
        pass


class IMessageGateway(ABC):
    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def reload(self, message: UoWModel) -> UoWModel:
        pass

    @abstractmethod
    async def get_reply_target(self, reply_id: str, group_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def create_message(self, **fields: Any) -> UoWModel:
        pass

    @abstractmethod
    async def list_group_messages(
        self,
        group_id: str,
        limit: int = 50,
        offset: int = 0,
        before: Optional[datetime] = None,
    ) -> List[UoWModel]:
        pass

    @abstractmethod
    async def latest_message(self, group_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def count_messages(self, group_id: str) -> int:
        pass

    @abstractmethod
    async def populate(self, messages: List[UoWModel]) -> List[PopulatedMessage]:
        pass

    @abstractmethod
    async def save_reactions(self, message: UoWModel, reactions: List[dict]) -> UoWModel:
        pass

    @abstractmethod
    async def add_report(self, message: UoWModel, report: dict, now: datetime) -> UoWModel:
        pass

    @abstractmethod
    async def flagged_messages(self) -> List[UoWModel]:
        pass


class INotificationGateway(ABC):
    @abstractmethod
    async def create_many(self, records: List[Dict[str, Any]]) -> List[Any]:
        pass


class IModerationGateway(ABC):
    @abstractmethod
    async def get_content(self, content_type: str, content_id: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def reload(self, content: UoWModel) -> UoWModel:
        pass

    @abstractmethod
    async def flagged(self, content_type: str) -> List[UoWModel]:
        pass

    @abstractmethod
    async def save(self, content: UoWModel) -> UoWModel:
        pass


class IAuditGateway(ABC):
    @abstractmethod
    async def record(
        self,
        admin_id: str,
        action: str,
        target_type: str,
        target_id: str,
        reason: Optional[str],
        details: Dict[str, Any],
    ) -> Any:
        pass

    @abstractmethod
    async def list_for_target(self, target_type: str, target_id: str) -> List[Any]:
        pass
