from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from panelpoints_api.models.contest import ContestInviteType, ContestStatus


class ContestCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: str | None = None
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    prize_points: int = Field(..., alias="prizePoints", gt=0)
    invite_type: ContestInviteType = Field(ContestInviteType.ALL_PANELISTS, alias="inviteType")


class ContestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    title: str
    description: str | None = None
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    prize_points: int = Field(..., alias="prizePoints")
    status: ContestStatus
    invite_type: ContestInviteType = Field(..., alias="inviteType")


class ContestInviteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    panelist_ids: list[UUID] = Field(..., alias="panelistIds", min_length=1)


class ContestInviteResponse(BaseModel):
    invited: list[UUID]


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    contest_id: UUID = Field(..., alias="contestId")
    panelist_id: UUID = Field(..., alias="panelistId")
    points_earned: int = Field(..., alias="pointsEarned")
    rank: int | None = None
    prize_awarded: bool = Field(..., alias="prizeAwarded")
    joined_at: datetime = Field(..., alias="joinedAt")


class AwardPrizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    panelist_id: UUID = Field(..., alias="panelistId")


class AwardPrizeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entry_id: UUID = Field(..., alias="entryId")
    points_awarded: int = Field(..., alias="pointsAwarded")
    new_balance: int = Field(..., alias="newBalance")


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    rank: int | None
    points_earned: int = Field(..., alias="pointsEarned")
    joined_at: datetime = Field(..., alias="joinedAt")
    panelist_id: UUID = Field(..., alias="panelistId")


class LeaderboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    leaderboard: list[LeaderboardEntryResponse]
    total_participants: int = Field(..., alias="totalParticipants")
    user_rank: int | None = Field(None, alias="userRank")
    user_points: int | None = Field(None, alias="userPoints")
    contest_status: ContestStatus = Field(..., alias="contestStatus")
