from datetime import datetime
from enum import Enum
from typing import Any, Dict
from pydantic import BaseModel, ConfigDict


class EventType(str, Enum):
    """Internal business events operators can subscribe endpoints to."""
    CRIOU_CONTA = "criou_conta"
    VENDA_REALIZADA = "venda_realizada"
    COMPROMISSO = "compromisso"
    PLANO_EXPIROU = "plano_expirou"
    TRIAL_EXPIROU = "trial_expirou"
    TRIAL_EXPIRA_1H = "trial_expira_1h"


EVENT_TYPES = frozenset(e.value for e in EventType)


class WebhookSubscription(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    event_type: str
    created_at: datetime

    def to_public(self) -> Dict[str, Any]:
        """Wire shape used by the admin console."""
        return {
            "id": self.id,
            "url": self.url,
            "evento": self.event_type,
            "criado_em": self.created_at.isoformat(),
        }
