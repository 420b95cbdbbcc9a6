from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from panelpoints_api.models.offer import RedemptionStatus
from panelpoints_api.models.point_ledger import PointTransactionType


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    panelist_id: UUID = Field(..., alias="panelistId")
    sequence: int
    points: int
    balance_after: int = Field(..., alias="balanceAfter")
    transaction_type: PointTransactionType = Field(..., alias="transactionType")
    title: str
    description: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        alias="metadata",
        validation_alias=AliasChoices("metadata_json", "metadata"),
    )
    awarded_by: UUID | None = Field(None, alias="awardedBy")
    created_at: datetime = Field(..., alias="createdAt")
    effective_date: date = Field(..., alias="effectiveDate")


class LedgerWindowResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entries: list[LedgerEntryResponse]
    next_cursor: str | None = Field(None, alias="nextCursor")


class PaginationInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(..., alias="totalPages")


class LedgerSearchResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    pagination: PaginationInfo


class BalanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    panelist_id: UUID = Field(..., alias="panelistId")
    points_balance: int = Field(..., alias="pointsBalance")
    total_points_earned: int = Field(..., alias="totalPointsEarned")
    total_points_redeemed: int = Field(..., alias="totalPointsRedeemed")


class ManualTransactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    panelist_id: UUID = Field(..., alias="panelistId")
    points: int
    transaction_type: PointTransactionType = Field(PointTransactionType.MANUAL_AWARD, alias="transactionType")
    title: str = Field(..., min_length=1)
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    effective_date: date | None = Field(None, alias="effectiveDate")


class IssuedTransactionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entry_id: UUID = Field(..., alias="entryId")
    new_balance: int = Field(..., alias="newBalance")
    total_earned: int = Field(..., alias="totalEarned")
    total_redeemed: int = Field(..., alias="totalRedeemed")


class ProjectionAuditResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    panelist_id: UUID = Field(..., alias="panelistId")
    consistent: bool
    points_balance: int = Field(..., alias="pointsBalance")
    ledger_balance: int = Field(..., alias="ledgerBalance")
    total_points_earned: int = Field(..., alias="totalPointsEarned")
    ledger_earned: int = Field(..., alias="ledgerEarned")
    total_points_redeemed: int = Field(..., alias="totalPointsRedeemed")
    ledger_redeemed: int = Field(..., alias="ledgerRedeemed")
    entry_count: int = Field(..., alias="entryCount")
    drift: dict[str, int] = Field(default_factory=dict)


class SurveyAnswerPayload(BaseModel):
    question_id: str = Field(..., validation_alias=AliasChoices("question_id", "questionId"), min_length=1)
    response_value: str = Field(..., validation_alias=AliasChoices("response_value", "responseValue"))
    response_metadata: dict[str, Any] | None = Field(
        None,
        validation_alias=AliasChoices("response_metadata", "responseMetadata"),
    )


class SurveyCompleteRequest(BaseModel):
    responses: list[SurveyAnswerPayload] = Field(default_factory=list)


class SurveyCompletionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    points_earned: int = Field(..., alias="pointsEarned")
    completion_id: UUID = Field(..., alias="completionId")
    new_balance: int = Field(..., alias="newBalance")
    total_earned: int = Field(..., alias="totalEarned")


class RedemptionCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    offer_id: UUID = Field(..., alias="offerId")


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    redemption_id: UUID = Field(..., alias="redemptionId")
    points_spent: int = Field(..., alias="pointsSpent")
    new_balance: int = Field(..., alias="newBalance")
    total_redeemed: int = Field(..., alias="totalRedeemed")


class RedemptionRecordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    offer_id: UUID = Field(..., alias="offerId")
    points_spent: int = Field(..., alias="pointsSpent")
    status: RedemptionStatus
    ledger_entry_id: UUID | None = Field(None, alias="ledgerEntryId")
    failure_reason: str | None = Field(None, alias="failureReason")
    redemption_date: datetime | None = Field(None, alias="redemptionDate")
    created_at: datetime = Field(..., alias="createdAt")


class RedemptionListResponse(BaseModel):
    redemptions: list[RedemptionRecordResponse]
    total: int


class UnawardedCompletionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    survey_id: UUID = Field(..., alias="surveyId")
    panelist_id: UUID = Field(..., alias="panelistId")
    points_earned: int = Field(..., alias="pointsEarned")
    completed_at: datetime = Field(..., alias="completedAt")


class RedemptionReconciliationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    older_than_seconds: int | None = Field(None, alias="olderThanSeconds", ge=0)


class RedemptionReconciliationResponse(BaseModel):
    completed: list[UUID]
    failed: list[UUID]
