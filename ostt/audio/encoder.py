"""Encoding a finished recording with an external ffmpeg process."""

import os
import sys
import wave
import shutil
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from ..exceptions import EncodingFailed
from ..models.audio import BYTES_PER_SAMPLE, Recording

logger = logging.getLogger(__name__)

CODEC_EXTENSIONS = {
    "libopus": "ogg",
    "libvorbis": "ogg",
    "flac": "flac",
    "aac": "m4a",
    "pcm_s16le": "wav",
}

OUTPUT_BASENAME = "ostt-recording"


def _candidate_paths() -> List[Path]:
    if sys.platform == "darwin":
        return [Path("/opt/homebrew/bin/ffmpeg"), Path("/usr/local/bin/ffmpeg"),
                Path("/usr/bin/ffmpeg")]
    if sys.platform == "win32":
        return [Path("C:\\ffmpeg\\bin\\ffmpeg.exe"),
                Path("C:\\Program Files\\ffmpeg\\bin\\ffmpeg.exe"),
                Path("C:\\Program Files (x86)\\ffmpeg\\bin\\ffmpeg.exe")]
    return [Path("/usr/bin/ffmpeg"), Path("/usr/local/bin/ffmpeg"), Path("/snap/bin/ffmpeg")]


def find_ffmpeg() -> Path:
    """Locate the ffmpeg binary, checking common install locations before PATH.

    Raises:
        EncodingFailed: If ffmpeg cannot be found
    """
    for path in _candidate_paths():
        if path.is_file():
            logger.debug(f"Found ffmpeg at: {path}")
            return path

    found = shutil.which("ffmpeg")
    if found:
        logger.debug(f"Found ffmpeg in PATH at: {found}")
        return Path(found)

    raise EncodingFailed("ffmpeg not found. Install ffmpeg and make sure it is on your PATH.")


def extension_for_codec(codec: str) -> str:
    return CODEC_EXTENSIONS.get(codec, codec)


class FFmpegEncoder:
    """Writes a Recording to disk in the configured format."""

    def __init__(self, output_format: str, output_dir: Optional[Path] = None,
                 ffmpeg_path: Optional[Path] = None):
        """Initialize encoder.

        Args:
            output_format: "codec [ffmpeg options]", e.g. "mp3 -ab 16k -ar 12000"
            output_dir: Directory for the encoded file (system temp dir by default)
            ffmpeg_path: Explicit ffmpeg binary, located lazily when None
        """
        parts = output_format.split()
        if not parts:
            raise ValueError("output_format must start with an ffmpeg codec name")
        self.codec = parts[0]
        self.options = parts[1:]
        self.output_dir = Path(output_dir) if output_dir else Path(tempfile.gettempdir())
        self.ffmpeg_path = ffmpeg_path

    @property
    def output_path(self) -> Path:
        return self.output_dir / f"{OUTPUT_BASENAME}.{extension_for_codec(self.codec)}"

    def build_command(self, input_wav: Path, output_path: Path) -> List[str]:
        ffmpeg = self.ffmpeg_path or find_ffmpeg()
        return [
            str(ffmpeg),
            "-loglevel", "error",
            "-i", str(input_wav),
            "-acodec", self.codec,
            "-ac", "1",
            "-y",
            *self.options,
            str(output_path),
        ]

    def _write_wav(self, recording: Recording, path: Path) -> None:
        with wave.open(str(path), "wb") as wf:
            wf.setnchannels(recording.channels)
            wf.setsampwidth(BYTES_PER_SAMPLE)
            wf.setframerate(recording.sample_rate)
            wf.writeframes(recording.pcm_data)
        logger.debug(f"Temporary WAV created: {path}")

    def encode(self, recording: Recording) -> Path:
        """Encode the recording and return the path of the written file.

        Raises:
            EncodingFailed: If ffmpeg is missing or exits unsuccessfully
        """
        if recording.is_empty:
            raise EncodingFailed("Cannot encode an empty recording")

        output_path = self.output_path
        output_path.parent.mkdir(parents=True, exist_ok=True)
        temp_wav = Path(tempfile.gettempdir()) / f"ostt_{os.getpid()}.wav"

        try:
            self._write_wav(recording, temp_wav)
            command = self.build_command(temp_wav, output_path)
            logger.debug(f"Running: {' '.join(command)}")
            try:
                result = subprocess.run(command, capture_output=True, check=False)
            except OSError as e:
                raise EncodingFailed(f"Could not run ffmpeg: {e}") from e

            if result.returncode != 0:
                stderr = result.stderr.decode("utf-8", errors="replace").strip()
                logger.error(f"ffmpeg conversion failed: {stderr}")
                raise EncodingFailed(f"Audio encoding failed: {stderr}", stderr=stderr)
        finally:
            try:
                temp_wav.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.debug(f"Failed to remove temp file: {e}")

        if not output_path.exists():
            raise EncodingFailed(f"ffmpeg reported success but {output_path} was not written")

        logger.info(f"Audio saved: {output_path} ({output_path.stat().st_size} bytes, "
                    f"{recording.duration_seconds:.2f}s, codec {self.codec})")
        return output_path
