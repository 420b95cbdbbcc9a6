"""Point ledger, survey award and redemption settlement services."""

from .errors import (  # noqa: F401
    ConflictError,
    ContestNotEndedError,
    EntityNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    LedgerInternalError,
    LedgerValidationError,
    NotQualifiedError,
    OfferInactiveError,
    PermissionDeniedError,
    PointsServiceError,
    SurveyInactiveError,
)
from .ledger import (  # noqa: F401
    IssuedTransaction,
    PanelistBalance,
    PointLedgerService,
    ProjectionAudit,
    decode_ledger_cursor,
    encode_ledger_cursor,
)
from .redemptions import RedemptionReconciliation, RedemptionResult, RedemptionService  # noqa: F401
from .surveys import SurveyAnswer, SurveyCompletionResult, SurveyCompletionService  # noqa: F401
