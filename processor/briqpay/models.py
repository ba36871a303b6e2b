# module processor.briqpay.models
"""
Schémas d'entrée/sortie des routes Briqpay (pydantic).
- Identifiants (sessionId, captureId, refundId): [A-Za-z0-9_-]{1,128}
- Messages (hardError, softErrors): jeu de caractères imprimables restreint, 500 caractères max
- softErrors: 10 entrées max
"""
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from processor.briqpay.status import PaymentOutcome, WebhookEvent, WebhookStatus

ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"
MESSAGE_MAX_LENGTH = 500
SOFT_ERRORS_MAX = 10
_MESSAGE_RE = re.compile(r"^[\w \t.,:;!?'\"()\[\]@/&%+#*=\-]*$")


def _check_message(v: str) -> str:
    if not _MESSAGE_RE.match(v):
        raise ValueError("message contient des caractères non autorisés")
    return v


class PaymentMethodType(str, Enum):
    BRIQPAY = "briqpay"


class Decision(str, Enum):
    ALLOW = "allow"
    REJECT = "reject"


class RejectionType(str, Enum):
    REJECT_WITH_ERROR = "reject_session_with_error"
    NOTIFY_USER = "notify_user"


class ErrorMessage(BaseModel):
    message: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH)

    @field_validator("message")
    @classmethod
    def _allowed_chars(cls, v: str) -> str:
        return _check_message(v)


class DecisionRequest(BaseModel):
    sessionId: str = Field(pattern=ID_PATTERN)
    decision: Decision
    rejectionType: Optional[RejectionType] = None
    hardError: Optional[ErrorMessage] = None
    softErrors: Optional[List[ErrorMessage]] = Field(default=None, max_length=SOFT_ERRORS_MAX)

    def to_provider_body(self) -> Dict[str, Any]:
        """Corps attendu par POST /session/{id}/decision (sans le sessionId)."""
        return self.model_dump(mode="json", exclude={"sessionId"}, exclude_none=True)


class DecisionResponse(BaseModel):
    success: bool
    decision: Decision


class NotificationRequest(BaseModel):
    event: WebhookEvent
    status: WebhookStatus
    sessionId: str = Field(pattern=ID_PATTERN)
    captureId: Optional[str] = Field(default=None, pattern=ID_PATTERN)
    refundId: Optional[str] = Field(default=None, pattern=ID_PATTERN)
    autoCaptured: Optional[bool] = None
    isPreExistingCapture: Optional[bool] = None
    transaction: Optional[Dict[str, Any]] = None


class PaymentMethod(BaseModel):
    type: PaymentMethodType


class PaymentRequest(BaseModel):
    paymentMethod: PaymentMethod
    briqpaySessionId: str = Field(pattern=ID_PATTERN)
    paymentOutcome: PaymentOutcome


class PaymentResponse(BaseModel):
    paymentReference: str


class Money(BaseModel):
    centAmount: int
    currencyCode: str = Field(min_length=3, max_length=3)


class PaymentIntentActionType(str, Enum):
    CAPTURE = "capturePayment"
    REFUND = "refundPayment"
    CANCEL = "cancelPayment"
    REVERSE = "reversePayment"


class PaymentIntentAction(BaseModel):
    action: PaymentIntentActionType
    amount: Optional[Money] = None


class PaymentIntentRequest(BaseModel):
    actions: List[PaymentIntentAction] = Field(min_length=1, max_length=1)
    merchantReference: Optional[str] = Field(default=None, max_length=256)


class PaymentIntentResponse(BaseModel):
    outcome: str
