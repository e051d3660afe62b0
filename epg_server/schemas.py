from pydantic import BaseModel, Field


class DiypProgram(BaseModel):
    """Single diyp schedule entry"""
    start: str = Field(..., description="Local start time, HH:MM")
    end: str = Field(..., description="Local end time, HH:MM")
    title: str
    desc: str = ""


class DiypDocument(BaseModel):
    """diyp placeholder document; stored documents keep their own field order"""
    channel_name: str
    date: str = Field(..., description="ISO calendar date")
    url: str
    icon: str | None = None
    epg_data: list[DiypProgram] | str


class LovetvProgram(BaseModel):
    """lovetv schedule entry derived from a stored diyp entry"""
    st: int = Field(..., description="Unix start timestamp")
    et: int = Field(..., description="Unix end timestamp")
    eventType: str = ""
    eventId: str = ""
    t: str = Field(..., description="Program title")
    showTime: str = Field(..., description="Duration as HH:MM")
    duration: int = Field(..., description="Duration in seconds")


class LovetvPlaceholderProgram(BaseModel):
    """lovetv placeholder entry"""
    st: int
    et: int
    t: str
    d: str = ""


class LovetvChannel(BaseModel):
    """lovetv document body, keyed by channel name in the response"""
    isLive: str = Field("", description="Title of the program airing now")
    liveSt: int = Field(0, description="Start timestamp of the program airing now")
    channelName: str
    lvUrl: str
    icon: str | None = None
    program: list[LovetvProgram] | list[LovetvPlaceholderProgram] | str


class HealthResponse(BaseModel):
    status: str
    cache_backend: str
    database: bool
    next_cache_sweep: str | None = None
