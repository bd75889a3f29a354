"""Badge and achievement models"""
import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from wellness_badges.utils.datetime_helpers import from_epoch_ms


class Metric(str, Enum):
    """Activity signals a criteria can refer to"""
    TASKS_COMPLETED = "tasks_completed"
    HEALTH_LOGS = "health_logs"
    DAILY_TASK_COMPLETION = "daily_task_completion"
    DAILY_ACTIVITY = "daily_activity"
    DAYS_SINCE_REGISTRATION = "days_since_registration"
    EARLY_TASKS = "early_tasks"
    LATE_TASKS = "late_tasks"
    BADGE_POINTS = "badge_points"


# Unknown names stay plain strings so new catalog entries load and resolve to 0
MetricName = Annotated[Union[Metric, str], Field(union_mode="left_to_right")]

FilterValue = Union[bool, int, float, str]

HOUR_KEYS = ("before_hour", "after_hour")


class Rarity(str, Enum):
    """Badge rarity tiers"""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class SharePlatform(str, Enum):
    """Where a badge can be shared"""
    INSTAGRAM = "instagram"
    WHATSAPP = "whatsapp"
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    EMAIL = "email"


class Conditions(BaseModel):
    """
    Extra constraints on a criteria.

    Hour bounds only apply to the early/late task predicates, filters only to
    the generic metric resolver. Raw catalog JSON is a flat object such as
    {"type": "exercise"} or {"before_hour": 9}; it is split on load.
    """
    model_config = ConfigDict(frozen=True)

    before_hour: Optional[int] = Field(default=None, ge=0, le=23)
    after_hour: Optional[int] = Field(default=None, ge=0, le=23)
    filters: dict[str, FilterValue] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_flat_conditions(cls, data: Any) -> Any:
        if isinstance(data, dict) and "filters" not in data:
            hours = {k: data[k] for k in HOUR_KEYS if k in data}
            filters = {k: v for k, v in data.items() if k not in HOUR_KEYS}
            return {**hours, "filters": filters}
        return data


class _CriteriaBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class CountCriteria(_CriteriaBase):
    """Qualifies when the resolved metric reaches the threshold"""
    type: Literal["count"] = "count"
    metric: MetricName
    threshold: int = Field(ge=0)
    timeframe: Optional[int] = Field(default=None, gt=0)
    conditions: Optional[Conditions] = None


class StreakCriteria(_CriteriaBase):
    """Qualifies when the current streak of active days reaches the threshold"""
    type: Literal["streak"] = "streak"
    metric: MetricName
    threshold: int = Field(ge=0)
    conditions: Optional[Conditions] = None

    @property
    def timeframe(self) -> None:
        return None


class TimeBasedCriteria(_CriteriaBase):
    """Qualifies when enough days have passed since a reference event"""
    type: Literal["time_based"] = "time_based"
    metric: MetricName
    threshold: int = Field(ge=0)

    @property
    def timeframe(self) -> None:
        return None

    @property
    def conditions(self) -> None:
        return None


class PercentageCriteria(_CriteriaBase):
    """Reserved shape, never qualifies"""
    type: Literal["percentage"] = "percentage"
    metric: Optional[str] = None
    threshold: Optional[int] = Field(default=None, ge=0)
    timeframe: Optional[int] = Field(default=None, gt=0)
    conditions: Optional[Conditions] = None


class Requirement(BaseModel):
    """One leg of a multi-metric custom criteria"""
    model_config = ConfigDict(frozen=True)

    metric: MetricName
    threshold: int = Field(ge=0)


class CustomCriteria(_CriteriaBase):
    """Named special predicate, or an AND over per-metric requirements"""
    type: Literal["custom"] = "custom"
    metric: Optional[MetricName] = None
    threshold: int = Field(default=0, ge=0)
    timeframe: Optional[int] = Field(default=None, gt=0)
    conditions: Optional[Conditions] = None
    requirements: Optional[tuple[Requirement, ...]] = None

    @model_validator(mode="after")
    def _needs_metric_or_requirements(self) -> "CustomCriteria":
        if self.metric is None and not self.requirements:
            raise ValueError("custom criteria needs a metric or requirements")
        return self


Criteria = Annotated[
    Union[CountCriteria, StreakCriteria, TimeBasedCriteria, PercentageCriteria, CustomCriteria],
    Field(discriminator="type"),
]

_criteria_adapter = TypeAdapter(Criteria)


def parse_criteria(raw: Union[str, bytes, dict]) -> Criteria:
    """
    Parse criteria JSON (text from the catalog, or an already-decoded dict)

    Raises:
        pydantic.ValidationError: criteria doesn't match any known shape
    """
    if isinstance(raw, (str, bytes)):
        return _criteria_adapter.validate_json(raw)
    return _criteria_adapter.validate_python(raw)


class AchievementDefinition(BaseModel):
    """Catalog entry, read-only for the engine"""
    model_config = ConfigDict(frozen=True)

    id: str
    achievement_key: str
    category: str
    title: str
    description: str = ""
    criteria: Criteria
    points_awarded: int = Field(default=0, ge=0)
    rarity: Rarity = Rarity.COMMON
    icon_emoji: str = "🏅"
    color_primary: str = "#3B82F6"
    color_secondary: str = "#1E40AF"
    is_active: bool = True

    @property
    def threshold(self) -> int:
        return self.criteria.threshold or 0

    @classmethod
    def from_row(cls, row: dict, locale: str = "en") -> "AchievementDefinition":
        """
        Build a definition from an achievement_definitions row

        Titles and descriptions are stored per language (title_en, title_de...);
        missing translations fall back to English.
        """
        title = row.get(f"title_{locale}") or row.get("title_en") or row["achievement_key"]
        description = row.get(f"description_{locale}") or row.get("description_en") or ""
        return cls(
            id=str(row["id"]),
            achievement_key=row["achievement_key"],
            category=row.get("category") or "general",
            title=title,
            description=description,
            criteria=parse_criteria(row["criteria"]),
            points_awarded=row.get("points_awarded") or 0,
            rarity=row.get("rarity") or Rarity.COMMON,
            icon_emoji=row.get("icon_emoji") or "🏅",
            color_primary=row.get("color_primary") or "#3B82F6",
            color_secondary=row.get("color_secondary") or "#1E40AF",
            is_active=bool(row.get("is_active", True)),
        )


class UserBadge(BaseModel):
    """A user's unlock of one achievement"""
    id: str
    user_id: str
    badge_id: str
    unlocked_at: datetime
    tier: str
    progress_percentage: int = 100
    metadata: Optional[dict[str, Any]] = None
    share_count: int = 0

    @classmethod
    def from_row(cls, row: dict) -> "UserBadge":
        """Build from a user_badges row (unlocked_at in epoch ms)"""
        metadata = row.get("metadata")
        if isinstance(metadata, (str, bytes)):
            metadata = json.loads(metadata)
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            badge_id=row["badge_id"],
            unlocked_at=from_epoch_ms(row["unlocked_at"]),
            tier=row.get("tier") or Rarity.COMMON.value,
            progress_percentage=row.get("progress_percentage") or 100,
            metadata=metadata,
            share_count=row.get("share_count") or 0,
        )


class BadgeProgress(BaseModel):
    """Progress toward one achievement, recomputed on every request"""
    badge_id: str
    current_value: int
    target_value: int
    percentage: int = Field(ge=0, le=100)
    is_complete: bool = False


class UserAccount(BaseModel):
    """The slice of a user the engine needs"""
    user_id: str
    created_at: datetime
    badge_points: int = 0


class BadgeShare(BaseModel):
    """Record of a badge being shared"""
    id: str
    user_badge_id: str
    user_id: str
    platform: SharePlatform
    share_url: str
    custom_message: str = ""
    shared_at: datetime


class ShareContent(BaseModel):
    """What the client posts to the chosen platform"""
    share_url: str
    image_url: Optional[str] = None
    message: str


def as_metric(name: Union[Metric, str, None]) -> Optional[Metric]:
    """Known Metric for a name, or None"""
    if isinstance(name, Metric):
        return name
    try:
        return Metric(name)
    except ValueError:
        return None
