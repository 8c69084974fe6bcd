"""ffmpeg argument builders shared by every stage that produces concat segments.

Converted sections and title videos must come out of the encoder with
identical stream parameters, otherwise the final stream-copy concat fails.
Both call output_encoding_args() so the two can not drift apart.
"""

from maketalk.config import EncodingConfig, TranscriptionConfig


def video_encoding_args(enc: EncodingConfig) -> list[str]:
    return [
        "-r", str(enc.frame_rate),
        "-c:v", enc.video_codec,
        "-crf", str(enc.crf),
        "-bf", str(enc.max_b_frames),
        "-flags", "+cgop",
        "-pix_fmt", enc.pix_fmt,
    ]


def audio_encoding_args(enc: EncodingConfig) -> list[str]:
    return [
        "-c:a", enc.audio_codec,
        "-b:a", enc.audio_bitrate,
        "-ac", str(enc.audio_channels),
        "-ar", str(enc.audio_sample_rate),
    ]


def output_encoding_args(enc: EncodingConfig) -> list[str]:
    """Video + audio codec parameters and faststart, without filters."""
    return [*video_encoding_args(enc), *audio_encoding_args(enc), "-movflags", "+faststart"]


def pad_filter(source_width: int, source_height: int, width: int, height: int) -> str:
    """
    Centered black letterboxing of a source onto a width x height canvas.

    Sources larger than the canvas in either dimension are scaled down
    (keeping aspect ratio) first, since pad can only grow a frame.
    """
    if source_width > width or source_height > height:
        return fit_filter(width, height)
    x = (width - source_width) // 2
    y = (height - source_height) // 2
    return f"pad={width}:{height}:{x}:{y}:black"


def fit_filter(width: int, height: int) -> str:
    """Scale to fit inside width x height, then pad to exactly that size."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black,setsar=1"
    )


def speech_audio_args(cfg: TranscriptionConfig) -> list[str]:
    """Raw PCM in the format the transcriber expects."""
    return [
        "-vn",
        "-acodec", cfg.audio_codec,
        "-ar", str(cfg.sample_rate),
        "-ac", str(cfg.channels),
    ]
