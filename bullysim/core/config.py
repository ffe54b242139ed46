from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..datastructures.messages import MessageTiming
from ..datastructures.process_set import validate_process_ids


class SimulatorSettings(BaseSettings):
    """BullySim engine configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="BULLYSIM_", env_file=".env", extra="ignore"
    )

    default_process_ids: tuple[int, ...] = Field(
        (1, 2, 3, 4, 5),
        description="Roster used on startup and restored by a system reset.",
    )

    # Failure detection
    heartbeat_interval: float = Field(
        2.0, gt=0, description="Seconds between heartbeat monitor ticks."
    )
    heartbeat_spacing: float = Field(
        0.1, ge=0, description="Stagger between the heartbeats of one tick."
    )

    # Election pacing
    election_spacing: float = Field(
        0.2, ge=0, description="Stagger between ELECTION messages of one batch."
    )
    response_spacing: float = Field(
        0.15, ge=0, description="Stagger between OK replies of one batch."
    )
    coordinator_spacing: float = Field(
        0.1, ge=0, description="Stagger between COORDINATOR announcements."
    )
    election_timeout: float = Field(
        4.0,
        gt=0,
        description="How long a candidate waits for OK replies before proclaiming itself.",
    )
    cascade_hops: int = Field(
        1,
        ge=0,
        description="Number of intermediate processes whose own election round is visualized.",
    )

    # Message visibility
    election_message_duration: float = Field(
        3.0, gt=0, description="Seconds an ELECTION message stays visible."
    )
    ok_message_duration: float = Field(
        2.5, gt=0, description="Seconds an OK message stays visible."
    )
    coordinator_message_duration: float = Field(
        2.0, gt=0, description="Seconds a COORDINATOR message stays visible."
    )
    heartbeat_message_duration: float = Field(
        1.0, gt=0, description="Seconds a heartbeat message stays visible."
    )

    # Event log
    log_retention: int = Field(
        100, gt=0, description="Number of trailing event log entries kept."
    )
    log_level: str = Field("INFO", description="Diagnostic logging level.")

    @field_validator("default_process_ids")
    @classmethod
    def _validate_default_ids(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        # InvalidConfig is a ValueError, so pydantic reports it as a validation error
        return validate_process_ids(value)

    def message_timing(self) -> MessageTiming:
        return MessageTiming(
            election=self.election_message_duration,
            ok=self.ok_message_duration,
            coordinator=self.coordinator_message_duration,
            heartbeat=self.heartbeat_message_duration,
        )
