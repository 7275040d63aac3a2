"""
FFmpeg command builder.

Maps validated request parameters to an ffmpeg invocation, one fixed
template per job kind.

Design rules:
- Pure apart from creating the job output directory
- Conditional arguments appear only when their parameter is non-blank
- The job id never reaches the external tool
- No process interaction
"""

import logging
import re
import shlex
from dataclasses import dataclass
from ipaddress import IPv6Address, ip_address
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Tuple, Union
from urllib.parse import quote

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..jobs.models import JobKind
from .errors import ValidationError
from .paths import ensure_output_dir, resolve_output_dir, sanitize_filename
from .schemas import SegmentRemuxParams, StreamIngestParams, is_supplied

logger = logging.getLogger(__name__)


# Appended to every SRT caller URL after the optional passphrase/streamid
SRT_URL_TUNING = (
    "recvbuf=100000000&latency=4000&maxbw=8000000"
    "&reconnect=1&reconnect_delay=500&reconnect_max_delay=10000"
)

SRT_PBKEYLEN = "16"

# Characters encodeURIComponent leaves untouched
_URL_COMPONENT_SAFE = "-_.!~*'()"

_PASSPHRASE_PATTERN = re.compile(r"(passphrase=)[^&\s]*")

STREAM_INGEST_INPUT_ARGS: Tuple[str, ...] = (
    "-nostdin",
    "-fflags", "+genpts+discardcorrupt+igndts+flush_packets",
    "-err_detect", "ignore_err",
    "-rw_timeout", "15000000",
    "-analyzeduration", "10M",
    "-probesize", "50M",
)

STREAM_INGEST_ENCODE_ARGS: Tuple[str, ...] = (
    "-map", "0:v:0",
    "-map", "0:a",
    "-c:v", "libx264",
    "-preset", "medium",
    "-crf", "20",
    "-r", "50",
    "-g", "300",
    "-keyint_min", "300",
    "-sc_threshold", "0",
    "-pix_fmt", "yuv420p",
    "-c:a", "aac",
    "-ac", "2",
    "-b:a", "128k",
    "-dn",
    "-f", "hls",
    "-hls_time", "6",
    "-hls_list_size", "0",
    "-hls_flags", "independent_segments+append_list",
)

SEGMENT_REMUX_INPUT_ARGS: Tuple[str, ...] = (
    "-fflags", "+genpts+discardcorrupt",
    "-reconnect", "1",
    "-reconnect_streamed", "1",
    "-reconnect_delay_max", "2",
)

SEGMENT_REMUX_OUTPUT_ARGS: Tuple[str, ...] = (
    "-map", "0:v:0",
    "-map", "0:a:0",
    "-c:v", "copy",
    "-c:a", "aac",
    "-b:a", "128k",
    "-profile:a", "aac_low",
    "-bsf:a", "aac_adtstoasc",
    "-movflags", "+faststart+frag_keyframe+empty_moov",
)


@dataclass(frozen=True)
class Invocation:
    """
    An external-tool invocation: program plus ordered argument vector.

    Immutable once built. output_dir is where the tool writes its media.
    """

    program: str
    args: Tuple[str, ...]
    output_dir: Path

    @property
    def argv(self) -> List[str]:
        """Full argument vector for subprocess."""
        return [self.program, *self.args]

    def display(self) -> str:
        """Shell-quoted command line with SRT passphrases masked."""
        masked = [_PASSPHRASE_PATTERN.sub(r"\1***", arg) for arg in self.argv]
        return " ".join(shlex.quote(arg) for arg in masked)


def _format_details(error: PydanticValidationError) -> List[str]:
    details = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "params"
        details.append(f"{location}: {item.get('msg', 'invalid value')}")
    return details


def _srt_host(address: str) -> str:
    try:
        if isinstance(ip_address(address), IPv6Address):
            return f"[{address}]"
    except ValueError:
        pass
    return address


def build_srt_url(params: StreamIngestParams) -> str:
    """
    Build the SRT caller URL.

    passphrase (with pbkeylen) and streamid are included only when
    supplied and non-blank.
    """
    url = f"srt://{_srt_host(params.srt_address)}:{params.srt_port}?mode=caller"

    if is_supplied(params.passphrase):
        url += f"&passphrase={quote(params.passphrase, safe=_URL_COMPONENT_SAFE)}&pbkeylen={SRT_PBKEYLEN}"

    if is_supplied(params.stream_id):
        url += f"&streamid={quote(params.stream_id, safe=_URL_COMPONENT_SAFE)}"

    return f"{url}&{SRT_URL_TUNING}"


class CommandBuilder:
    """
    Builds ffmpeg invocations for each job kind.

    Output directories are confined under output_base and created on
    build.
    """

    def __init__(self, output_base: Union[str, Path], ffmpeg_binary: str = "ffmpeg"):
        """
        Initialize builder.

        Args:
            output_base: Base directory all job outputs live under
            ffmpeg_binary: Program name or path of the ffmpeg executable
        """
        self.output_base = Path(output_base)
        self.ffmpeg_binary = ffmpeg_binary
        self._templates: Dict[JobKind, Tuple[type, Callable[[Any], Invocation]]] = {
            JobKind.STREAM_INGEST: (StreamIngestParams, self._build_stream_ingest),
            JobKind.SEGMENT_REMUX: (SegmentRemuxParams, self._build_segment_remux),
        }

    def build(self, kind: Union[JobKind, str], params: Mapping[str, Any]) -> Invocation:
        """
        Validate params and build the invocation for a job kind.

        Args:
            kind: Job kind (enum or its string value)
            params: Raw parameter bag

        Returns:
            Invocation with the output directory already created

        Raises:
            ValidationError: If kind is unknown or params violate the schema
            OutputDirectoryError: If the output directory cannot be created
        """
        job_kind = self.resolve_kind(kind)
        schema, template = self._templates[job_kind]

        if not isinstance(params, Mapping):
            raise ValidationError("Parameters must be an object")

        try:
            validated = schema.model_validate(dict(params))
        except PydanticValidationError as e:
            details = _format_details(e)
            raise ValidationError(f"Invalid {job_kind.label} parameters", details) from e

        invocation = template(validated)
        logger.debug(f"[Commands] Built {job_kind.value} invocation, output dir {invocation.output_dir}")
        return invocation

    @staticmethod
    def resolve_kind(kind: Union[JobKind, str]) -> JobKind:
        """
        Raises:
            ValidationError: If kind is not a known job kind
        """
        try:
            return JobKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown job kind: {kind}") from None

    def _prepare_output_dir(self, params: BaseModel) -> Path:
        # Validation of the path must happen before the directory is created
        output_dir = resolve_output_dir(self.output_base, params.output_path)
        return ensure_output_dir(output_dir)

    def _build_stream_ingest(self, params: StreamIngestParams) -> Invocation:
        srt_url = build_srt_url(params)
        output_dir = self._prepare_output_dir(params)

        hls_name = sanitize_filename(params.hls_name)
        segment_pattern = output_dir / f"{hls_name}_segment_%03d.ts"
        playlist_path = output_dir / f"{hls_name}.m3u8"

        args = (
            *STREAM_INGEST_INPUT_ARGS,
            "-i", srt_url,
            *STREAM_INGEST_ENCODE_ARGS,
            "-hls_segment_filename", str(segment_pattern),
            "-movflags", "+faststart",
            "-y",
            str(playlist_path),
        )
        return Invocation(program=self.ffmpeg_binary, args=args, output_dir=output_dir)

    def _build_segment_remux(self, params: SegmentRemuxParams) -> Invocation:
        output_dir = self._prepare_output_dir(params)
        mp4_path = output_dir / f"{sanitize_filename(params.mp4_name)}.mp4"

        args = (
            *SEGMENT_REMUX_INPUT_ARGS,
            "-i", params.hls_input_url,
            *SEGMENT_REMUX_OUTPUT_ARGS,
            "-y",
            str(mp4_path),
        )
        return Invocation(program=self.ffmpeg_binary, args=args, output_dir=output_dir)
