"""SQLAlchemy models package."""

# Import all models
from .user import User, UserRoleEnum  # noqa: F401
from .panelist import PanelistProfile  # noqa: F401
from .point_ledger import PointLedgerEntry, PointTransactionType  # noqa: F401
from .survey import (  # noqa: F401
    Survey,
    SurveyCompletion,
    SurveyQualification,
    SurveyResponse,
    SurveyStatus,
)
from .offer import MerchantOffer, Redemption, RedemptionStatus  # noqa: F401
from .contest import (  # noqa: F401
    Contest,
    ContestInvitation,
    ContestInviteType,
    ContestParticipant,
    ContestPrizeAward,
    ContestStatus,
)
