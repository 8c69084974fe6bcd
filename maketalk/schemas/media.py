"""Media metadata parsed from ffprobe JSON and ffmpeg loudnorm output."""

from fractions import Fraction
from typing import Any, Optional

from pydantic import BaseModel, Field


class VideoStream(BaseModel):
    codec: str
    width: int
    height: int
    pix_fmt: Optional[str] = None
    frame_rate: Optional[str] = None

    @property
    def dimensions(self) -> str:
        return f"{self.width}x{self.height}"


class AudioStream(BaseModel):
    codec: str
    sample_rate: Optional[int] = None
    channels: Optional[int] = None


class MediaInfo(BaseModel):
    """The subset of ffprobe output the pipeline makes decisions on."""

    video: Optional[VideoStream] = None
    audio: Optional[AudioStream] = None
    duration: Optional[float] = None

    @classmethod
    def from_ffprobe(cls, data: dict[str, Any]) -> "MediaInfo":
        video = audio = None
        for stream in data.get("streams", []):
            kind = stream.get("codec_type")
            if kind == "video" and video is None:
                video = VideoStream(
                    codec=stream.get("codec_name", "unknown"),
                    width=int(stream.get("width", 0)),
                    height=int(stream.get("height", 0)),
                    pix_fmt=stream.get("pix_fmt"),
                    frame_rate=_normalize_rate(stream.get("r_frame_rate")),
                )
            elif kind == "audio" and audio is None:
                audio = AudioStream(
                    codec=stream.get("codec_name", "unknown"),
                    sample_rate=int(stream["sample_rate"]) if stream.get("sample_rate") else None,
                    channels=stream.get("channels"),
                )

        duration = data.get("format", {}).get("duration")
        return cls(
            video=video,
            audio=audio,
            duration=float(duration) if duration not in (None, "N/A") else None,
        )

    def stream_signature(self) -> tuple:
        """Parameters that must agree for concat demuxer stream copy."""
        v = self.video
        a = self.audio
        return (
            (v.codec, v.width, v.height, v.pix_fmt, v.frame_rate) if v else None,
            (a.codec, a.sample_rate, a.channels) if a else None,
        )


def _normalize_rate(rate: Optional[str]) -> Optional[str]:
    """30/1 and 60/2 both become "30"."""
    if not rate or rate == "0/0":
        return None
    try:
        value = Fraction(rate)
    except (ValueError, ZeroDivisionError):
        return rate
    return str(value.numerator) if value.denominator == 1 else f"{value.numerator}/{value.denominator}"


class LoudnormStats(BaseModel):
    """Measured values printed by loudnorm with print_format=json."""

    input_i: str
    input_tp: str
    input_lra: str
    input_thresh: str
    target_offset: str = Field(default="0.0")
