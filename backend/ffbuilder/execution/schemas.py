"""
Request parameter schemas, one per job kind.

Parameters arrive with the camelCase keys used by the web client
(srtAddress, hlsInputUrl, ...); snake_case names are accepted as well.
Unknown keys are rejected. Optional strings may be blank; blank means
"not supplied".
"""

import re
from ipaddress import ip_address
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


_HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)"
    r"(?!-)[A-Za-z0-9-]{1,63}(?<!-)"
    r"(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))*\.?$"
)


def _non_blank(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("must not be blank")
    return v


class ConversionParams(BaseModel):
    """Common configuration for conversion parameter models."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )

    output_path: str = Field(min_length=1)

    @field_validator("output_path")
    @classmethod
    def validate_output_path(cls, v: str) -> str:
        return _non_blank(v)


class StreamIngestParams(ConversionParams):
    """SRT caller stream ingested into an HLS playlist."""

    srt_address: str
    srt_port: int = Field(ge=1, le=65535)
    stream_id: Optional[str] = None
    passphrase: Optional[str] = None
    hls_name: str = Field(min_length=1)

    @field_validator("srt_address")
    @classmethod
    def validate_srt_address(cls, v: str) -> str:
        """Accept an IPv4/IPv6 address or a DNS host name."""
        candidate = v.strip()
        try:
            return str(ip_address(candidate))
        except ValueError:
            pass
        if not _HOSTNAME_PATTERN.match(candidate):
            raise ValueError("must be a valid IP address or host name")
        # "999.1.1.1" is a malformed address, not a host name
        if all(label.isdigit() for label in candidate.rstrip(".").split(".")):
            raise ValueError("must be a valid IP address or host name")
        return candidate

    @field_validator("srt_port", mode="before")
    @classmethod
    def reject_boolean_port(cls, v):
        # bool is an int subclass; lax mode would turn true into port 1
        if isinstance(v, bool):
            raise ValueError("must be an integer")
        return v

    @field_validator("hls_name")
    @classmethod
    def validate_hls_name(cls, v: str) -> str:
        return _non_blank(v)


class SegmentRemuxParams(ConversionParams):
    """HLS playlist remuxed into one MP4 file."""

    hls_input_url: str
    mp4_name: str = Field(min_length=1)

    @field_validator("hls_input_url")
    @classmethod
    def validate_hls_input_url(cls, v: str) -> str:
        """URL must be absolute, with scheme and host, and contain no whitespace."""
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("must be a valid URL")
        try:
            parts = urlsplit(v)
        except ValueError as e:
            raise ValueError(f"must be a valid URL ({e})") from e
        if not parts.scheme or not parts.netloc:
            raise ValueError("must be an absolute URL with scheme and host")
        return v

    @field_validator("mp4_name")
    @classmethod
    def validate_mp4_name(cls, v: str) -> str:
        return _non_blank(v)


def is_supplied(value: Optional[str]) -> bool:
    """True when an optional parameter is present and not blank."""
    return value is not None and bool(value.strip())
