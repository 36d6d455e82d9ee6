"""
Typed channel and binding settings.

Channel settings are stored as JSON but are only ever handed to the rest of
the system after being parsed into one of the variants below.
"""

import re
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..errors import ConfigurationError


class VkSettings(BaseModel):
    """VK community Callback API settings."""
    type: Literal["vk"] = "vk"
    token: str
    group_id: str
    confirmation_code: str = ""
    secret_key: Optional[str] = None


class AvitoSettings(BaseModel):
    """Avito Messenger API settings."""
    type: Literal["avito"] = "avito"
    client_id: str
    client_secret: str
    profile_id: str

    @property
    def clean_profile_id(self) -> str:
        # Avito API paths accept digits only
        return re.sub(r"\D", "", self.profile_id)


class WebSettings(BaseModel):
    """Embeddable web widget settings."""
    type: Literal["web"] = "web"
    title: str = "Chat"
    greeting: Optional[str] = None


ChannelSettings = Annotated[Union[VkSettings, AvitoSettings, WebSettings], Field(discriminator="type")]

_channel_settings_adapter = TypeAdapter(ChannelSettings)


def parse_channel_settings(channel_type: str, raw: Optional[dict]) -> Union[VkSettings, AvitoSettings, WebSettings]:
    """Parse a channel's stored settings into its typed variant."""
    data = dict(raw or {})
    data["type"] = channel_type
    try:
        return _channel_settings_adapter.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings for channel type '{channel_type}': {e}") from e


class ScheduleSettings(BaseModel):
    """Operating hours of an assistant on a channel."""
    enabled: bool = False
    work_mode: Literal["24/7", "schedule"] = Field(default="24/7", alias="workMode")
    start_time: str = Field(default="00:00", alias="startTime")
    end_time: str = Field(default="23:59", alias="endTime")
    weekdays: List[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


def parse_schedule(binding_settings: Optional[dict]) -> ScheduleSettings:
    """Extract the schedule from a binding's settings blob."""
    schedule = (binding_settings or {}).get("schedule") or {}
    try:
        return ScheduleSettings.model_validate(schedule)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid schedule settings: {e}") from e
