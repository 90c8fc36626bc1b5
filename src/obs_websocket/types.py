"""Typed records exchanged with OBS.

Field names follow Python conventions; aliases carry the wire names
(OBS mixes kebab-case, camelCase and snake_case). Unknown fields are kept
so newer server versions do not break validation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ObsModel(BaseModel):
    """Base for all records: accepts wire names or field names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_args(self) -> dict[str, Any]:
        """Dump using wire names, for use as request arguments."""
        return self.model_dump(by_alias=True, exclude_none=True)


class AuthRequired(ObsModel):
    """Result of GetAuthRequired."""

    auth_required: bool = Field(alias="authRequired")
    challenge: str | None = None
    salt: str | None = None


class StreamStatus(ObsModel):
    """Result of GetStreamingStatus."""

    streaming: bool = False
    recording: bool = False
    recording_paused: bool = Field(default=False, alias="recording-paused")
    virtualcam: bool = False
    preview_only: bool = Field(default=False, alias="preview-only")
    stream_timecode: str | None = Field(default=None, alias="stream-timecode")
    rec_timecode: str | None = Field(default=None, alias="rec-timecode")


class StreamSetting(ObsModel):
    """Connection settings of a stream service."""

    server: str | None = None
    key: str | None = None
    use_auth: bool | None = None
    username: str | None = None
    password: str | None = None


class StreamSettings(ObsModel):
    """Result of GetStreamSettings, also the argument of SetStreamSettings."""

    type: str
    settings: StreamSetting = Field(default_factory=StreamSetting)


class StudioModeStatus(ObsModel):
    """Result of GetStudioModeStatus."""

    studio_mode: bool = Field(alias="studio-mode")


class SceneItem(ObsModel):
    """A source placed in a scene, as listed by GetCurrentScene."""

    id: int | None = None
    name: str
    type: str | None = None
    render: bool = True
    muted: bool = False
    locked: bool = False
    volume: float | None = None
    x: float | None = None
    y: float | None = None
    cx: float | None = None
    cy: float | None = None
    source_cx: int | None = None
    source_cy: int | None = None
    alignment: int | None = None
    parent_group_name: str | None = Field(default=None, alias="parentGroupName")
    group_children: list[SceneItem] | None = Field(default=None, alias="groupChildren")


class Scene(ObsModel):
    """Result of GetCurrentScene; also an entry of GetSceneList."""

    name: str
    sources: list[SceneItem] = Field(default_factory=list)


class SceneList(ObsModel):
    """Result of GetSceneList."""

    current_scene: str = Field(alias="current-scene")
    scenes: list[Scene] = Field(default_factory=list)


class SceneItemSummary(ObsModel):
    item_id: int = Field(alias="itemId")
    source_name: str = Field(alias="sourceName")
    source_kind: str | None = Field(default=None, alias="sourceKind")
    source_type: str | None = Field(default=None, alias="sourceType")


class SceneItemList(ObsModel):
    """Result of GetSceneItemList."""

    scene_name: str = Field(alias="sceneName")
    scene_items: list[SceneItemSummary] = Field(default_factory=list, alias="sceneItems")


class MediaState(ObsModel):
    """Result of GetMediaState.

    `media_state` is one of: none, playing, opening, buffering, paused,
    stopped, ended, error, unknown.
    """

    media_state: str = Field(alias="mediaState")


# Typed event payloads, used with ObsEvent.parse_as()


class StudioModeSwitched(ObsModel):
    new_state: bool = Field(alias="new-state")


class SwitchScenes(ObsModel):
    scene_name: str = Field(alias="scene-name")
    sources: list[SceneItem] = Field(default_factory=list)
