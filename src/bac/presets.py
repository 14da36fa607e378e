"""Named, fixed bundles of conversion settings."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from .settings import (
    DEFAULT_VBR_QUALITY,
    BitrateMode,
    Channels,
    OutputFormat,
    SampleRate,
    format_spec,
)


@dataclass(frozen=True)
class ConversionPreset:
    key: str
    display_name: str
    description: str
    format: OutputFormat
    bitrate: int  # kbps; 0 for VBR and lossless presets
    sample_rate: SampleRate
    channels: Channels
    bitrate_mode: BitrateMode
    vbr_quality: int = DEFAULT_VBR_QUALITY

    def detailed_description(self) -> str:
        lines = [self.display_name, self.description, f"Format: {self.format}"]
        if format_spec(self.format).supports_bitrate and self.bitrate_mode is BitrateMode.CONSTANT:
            lines.append(f"Bitrate: {self.bitrate} kbps")
        elif self.bitrate_mode is BitrateMode.VARIABLE:
            lines.append("Mode: Variable Bitrate (VBR)")
        lines.append(f"Sample Rate: {self.sample_rate.label}")
        lines.append(f"Channels: {self.channels.label}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.display_name


PRESETS: Dict[str, ConversionPreset] = {
    p.key: p
    for p in (
        ConversionPreset(
            "none", "None (Custom Settings)", "Configure settings manually",
            OutputFormat.MP3, 192, SampleRate.SR_44100, Channels.STEREO, BitrateMode.CONSTANT,
        ),
        ConversionPreset(
            "podcast", "Podcast Standard", "Optimized for voice recordings and podcasts",
            OutputFormat.MP3, 128, SampleRate.SR_44100, Channels.MONO, BitrateMode.CONSTANT,
        ),
        ConversionPreset(
            "music-hq", "Music High Quality", "Best quality for music listening",
            OutputFormat.MP3, 320, SampleRate.SR_48000, Channels.STEREO, BitrateMode.CONSTANT,
        ),
        ConversionPreset(
            "music-vbr", "Music VBR Quality", "High quality with smaller file size",
            OutputFormat.MP3, 0, SampleRate.SR_48000, Channels.STEREO, BitrateMode.VARIABLE,
            vbr_quality=0,
        ),
        ConversionPreset(
            "voice", "Voice Recording", "Compact format for voice memos",
            OutputFormat.M4A, 64, SampleRate.SR_32000, Channels.MONO, BitrateMode.CONSTANT,
        ),
        ConversionPreset(
            "archive", "Archive/Lossless", "Perfect quality preservation",
            OutputFormat.FLAC, 0, SampleRate.SR_48000, Channels.STEREO, BitrateMode.CONSTANT,
        ),
        ConversionPreset(
            "small", "Small File Size", "Minimum file size for sharing",
            OutputFormat.MP3, 64, SampleRate.SR_32000, Channels.MONO, BitrateMode.CONSTANT,
        ),
    )
}


def get_preset(key: str) -> ConversionPreset:
    try:
        return PRESETS[key]
    except KeyError:
        raise KeyError(f"unknown preset {key!r}; choose from: {', '.join(PRESETS)}") from None


def list_presets() -> List[ConversionPreset]:
    return list(PRESETS.values())
