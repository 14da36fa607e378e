"""Conversion settings: output formats, quality tiers and the settings model.

Per-format capabilities live in one static table keyed by `OutputFormat`;
`format_spec()` is the only reader. The command builder and the CLI both go
through it, so the table is the contract between them.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .presets import ConversionPreset


class OutputFormat(str, Enum):
    MP3 = "mp3"
    WAV = "wav"
    M4A = "m4a"
    FLAC = "flac"

    def __str__(self) -> str:
        return self.value.upper()


@dataclass(frozen=True)
class FormatSpec:
    extension: str
    codec: str
    supports_bitrate: bool
    supports_vbr: bool
    bitrate_options: Tuple[int, ...]
    default_bitrate: int
    sample_rate_options: Tuple[int, ...]
    default_sample_rate: int = 44100

    @property
    def lossless(self) -> bool:
        return not self.supports_bitrate


_ALL_RATES = (8000, 11025, 12000, 16000, 22050, 24000, 32000, 44100, 48000, 64000, 88200, 96000)
_STD_RATES = (8000, 11025, 12000, 16000, 22050, 24000, 32000, 44100, 48000)

_FORMATS: Dict[OutputFormat, FormatSpec] = {
    OutputFormat.MP3: FormatSpec(
        extension="mp3",
        codec="libmp3lame",
        supports_bitrate=True,
        supports_vbr=True,
        bitrate_options=(32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320),
        default_bitrate=192,
        sample_rate_options=(32000, 44100, 48000),
    ),
    OutputFormat.WAV: FormatSpec(
        extension="wav",
        codec="pcm_s16le",
        supports_bitrate=False,
        supports_vbr=False,
        bitrate_options=(),
        default_bitrate=0,
        sample_rate_options=_ALL_RATES,
    ),
    OutputFormat.M4A: FormatSpec(
        extension="m4a",
        codec="aac",
        supports_bitrate=True,
        supports_vbr=False,
        bitrate_options=(16, 32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 384, 448, 512),
        default_bitrate=192,
        sample_rate_options=_STD_RATES,
    ),
    OutputFormat.FLAC: FormatSpec(
        extension="flac",
        codec="flac",
        supports_bitrate=False,
        supports_vbr=False,
        bitrate_options=(),
        default_bitrate=0,
        sample_rate_options=_STD_RATES,
    ),
}


def format_spec(fmt: OutputFormat) -> FormatSpec:
    return _FORMATS[OutputFormat(fmt)]


class Quality(Enum):
    ECONOMY = ("Economy", 64)
    STANDARD = ("Standard", 128)
    GOOD = ("Good", 192)
    BEST = ("Best", 320)

    def __init__(self, label: str, bitrate: int) -> None:
        self.label = label
        self.bitrate = bitrate

    @classmethod
    def from_bitrate(cls, kbps: int) -> Optional["Quality"]:
        for q in cls:
            if q.bitrate == kbps:
                return q
        return None

    def __str__(self) -> str:
        return f"{self.label} ({self.bitrate} kbps)"


class SampleRate(Enum):
    SR_8000 = 8000
    SR_11025 = 11025
    SR_12000 = 12000
    SR_16000 = 16000
    SR_22050 = 22050
    SR_24000 = 24000
    SR_32000 = 32000
    SR_44100 = 44100
    SR_48000 = 48000
    SR_64000 = 64000
    SR_88200 = 88200
    SR_96000 = 96000

    @property
    def rate(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        return f"{self.value} Hz"

    @classmethod
    def from_rate(cls, rate: int) -> "SampleRate":
        try:
            return cls(int(rate))
        except ValueError:
            return cls.SR_44100

    def __str__(self) -> str:
        return self.label


class Channels(Enum):
    MONO = ("Mono", 1)
    STEREO = ("Stereo", 2)

    def __init__(self, label: str, count: int) -> None:
        self.label = label
        self.count = count

    @classmethod
    def from_count(cls, count: int) -> "Channels":
        for c in cls:
            if c.count == count:
                return c
        raise ValueError(f"unsupported channel count: {count}")

    def __str__(self) -> str:
        return self.label


class BitrateMode(str, Enum):
    CONSTANT = "cbr"
    VARIABLE = "vbr"

    @property
    def label(self) -> str:
        return "Constant Bitrate (CBR)" if self is BitrateMode.CONSTANT else "Variable Bitrate (VBR)"

    def __str__(self) -> str:
        return self.label


DEFAULT_VBR_QUALITY = 2
VBR_QUALITY_RANGE = range(0, 6)  # 0 = best .. 5 = smallest


class ConversionSettings:
    """What the user wants every file in a batch converted to.

    `custom_bitrate` (kbps) overrides the quality tier when set and positive.
    Assigning `output_format` drops the override, since a bitrate picked for
    one codec may not be offered by the next. A sample rate the new format
    cannot take is reset to the format default.
    """

    def __init__(
        self,
        output_format: OutputFormat = OutputFormat.MP3,
        *,
        quality: Quality = Quality.GOOD,
        custom_bitrate: Optional[int] = None,
        sample_rate: SampleRate = SampleRate.SR_44100,
        channels: Channels = Channels.STEREO,
        bitrate_mode: BitrateMode = BitrateMode.CONSTANT,
        vbr_quality: int = DEFAULT_VBR_QUALITY,
    ) -> None:
        self._output_format = OutputFormat(output_format)
        self.quality = quality
        self.custom_bitrate = custom_bitrate
        self.sample_rate = sample_rate
        self.channels = channels
        self.bitrate_mode = bitrate_mode
        self.vbr_quality = vbr_quality

    def __repr__(self) -> str:
        return (
            f"ConversionSettings(output_format={self._output_format.value!r}, quality={self.quality.name}, "
            f"custom_bitrate={self.custom_bitrate!r}, sample_rate={self.sample_rate.rate}, "
            f"channels={self.channels.count}, bitrate_mode={self.bitrate_mode.value!r}, "
            f"vbr_quality={self.vbr_quality})"
        )

    @property
    def output_format(self) -> OutputFormat:
        return self._output_format

    @output_format.setter
    def output_format(self, fmt: OutputFormat) -> None:
        fmt = OutputFormat(fmt)
        self._output_format = fmt
        self.custom_bitrate = None
        spec = format_spec(fmt)
        if self.sample_rate.rate not in spec.sample_rate_options:
            self.sample_rate = SampleRate.from_rate(spec.default_sample_rate)

    @property
    def format_spec(self) -> FormatSpec:
        return format_spec(self._output_format)

    def effective_bitrate(self) -> int:
        if self.custom_bitrate is not None and self.custom_bitrate > 0:
            return self.custom_bitrate
        return self.quality.bitrate

    @property
    def uses_vbr_quality(self) -> bool:
        """True when the encoder gets a quality index instead of a bitrate."""
        return self.format_spec.supports_vbr and self.bitrate_mode is BitrateMode.VARIABLE

    def load_from_preset(self, preset: "ConversionPreset") -> None:
        # Fields are written directly so the format change does not wipe
        # the preset's own bitrate.
        self._output_format = preset.format
        self.sample_rate = preset.sample_rate
        self.channels = preset.channels
        self.bitrate_mode = preset.bitrate_mode

        if format_spec(preset.format).supports_bitrate:
            if preset.bitrate_mode is BitrateMode.CONSTANT:
                self.custom_bitrate = preset.bitrate
                self.vbr_quality = DEFAULT_VBR_QUALITY
                tier = Quality.from_bitrate(preset.bitrate)
                if tier is not None:
                    self.quality = tier
            else:
                self.vbr_quality = preset.vbr_quality
                self.custom_bitrate = None
        else:
            self.custom_bitrate = None

    def snapshot(self) -> "ConversionSettings":
        """Independent copy handed to a batch so later edits cannot leak into it."""
        return copy.copy(self)

    def describe(self) -> str:
        spec = self.format_spec
        parts = [str(self.output_format), f"{self.sample_rate.rate} Hz", self.channels.label]
        if spec.supports_bitrate:
            if self.uses_vbr_quality:
                parts.append(f"VBR q={self.vbr_quality}")
            else:
                parts.append(f"{self.effective_bitrate()}k")
        return ", ".join(parts)
