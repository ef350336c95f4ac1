from dataclasses import dataclass
from typing import Optional

SYSTEM_ACTOR_ID = 'SYSTEM'


@dataclass(frozen=True)
class ActorContext:
    """Who performed an administrative action, and from where."""
    user_id: str
    username: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_system(self) -> bool:
        return self.user_id == SYSTEM_ACTOR_ID

    @property
    def display_name(self) -> str:
        return self.username or self.user_id


SYSTEM_ACTOR = ActorContext(user_id=SYSTEM_ACTOR_ID, username='system')
