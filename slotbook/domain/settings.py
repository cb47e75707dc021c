"""
Owner-configured availability constraints for a scheduling page.
"""

from pydantic import BaseModel, field_validator, model_validator

MAX_DATE_RANGE_DAYS = 180


class AvailabilitySettings(BaseModel):
    """Slot grid settings for one scheduling page."""
    slot_duration_minutes: int = 30
    buffer_minutes: int = 0
    min_notice_hours: int = 8
    include_weekends: bool = False
    date_range_days: int = 60
    workday_start_hour: int = 9
    workday_end_hour: int = 17

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure slot duration is positive."""
        if value <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        return value

    @field_validator("buffer_minutes", "min_notice_hours")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must not be negative")
        return value

    @field_validator("date_range_days")
    @classmethod
    def validate_date_range(cls, value: int) -> int:
        """Bound the range to cap recurrence expansion cost."""
        if not 1 <= value <= MAX_DATE_RANGE_DAYS:
            raise ValueError(
                f"date_range_days must be between 1 and {MAX_DATE_RANGE_DAYS}, got {value}"
            )
        return value

    @field_validator("workday_start_hour")
    @classmethod
    def validate_start_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("workday_end_hour")
    @classmethod
    def validate_end_hour(cls, v: int) -> int:
        """Validate hour is between 1 and 24 (24 means midnight)."""
        if not 1 <= v <= 24:
            raise ValueError(f"Hour must be between 1 and 24, got {v}")
        return v

    @model_validator(mode="after")
    def validate_hours_order(self) -> "AvailabilitySettings":
        """Ensure the workday opens before it closes."""
        if self.workday_end_hour <= self.workday_start_hour:
            raise ValueError("workday_end_hour must be later than workday_start_hour")
        return self

    @property
    def step_minutes(self) -> int:
        """Distance between consecutive slot starts."""
        return self.slot_duration_minutes + self.buffer_minutes
