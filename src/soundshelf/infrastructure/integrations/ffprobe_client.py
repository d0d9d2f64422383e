"""ffprobe client - media inspection via subprocess.

Hey future me - this is the ONLY place that knows ffprobe's command line. The scanner asks for
ERROR|FORMAT|STREAMS first and escalates to PACKETS only when an audio stream is missing its
duration or bit rate (packets make ffprobe read the WHOLE file, seconds per FLAC).

Command:
    ffprobe -v fatal -print_format json -noshow_private_data
            -show_error -show_format -show_streams [-show_packets] <path>

Every failure mode (missing executable, non-zero exit without output, garbage JSON, broken
document) collapses into None. A report WITH an error section is returned as-is, the scanner
decides what that means.
"""

import json
import logging
from pathlib import Path

from soundshelf.config import ScannerSettings
from soundshelf.domain.ports import IMediaProber
from soundshelf.domain.value_objects.probe import ProbeReport, ProbeSection
from soundshelf.infrastructure.integrations.process_runner import run_process

logger = logging.getLogger(__name__)

_SECTION_FLAGS: tuple[tuple[ProbeSection, str], ...] = (
    (ProbeSection.ERROR, "-show_error"),
    (ProbeSection.FORMAT, "-show_format"),
    (ProbeSection.PACKETS, "-show_packets"),
    (ProbeSection.STREAMS, "-show_streams"),
)


def build_probe_args(
    executable: str, path: Path, sections: ProbeSection
) -> list[str]:
    """Build the ffprobe argument vector (path always last)."""
    args = [executable, "-v", "fatal", "-print_format", "json", "-noshow_private_data"]
    for section, flag in _SECTION_FLAGS:
        if section in sections:
            args.append(flag)
    args.append(str(path))
    return args


class FfprobeClient(IMediaProber):
    """IMediaProber backed by the ffprobe executable."""

    def __init__(self, settings: ScannerSettings) -> None:
        """Initialize client.

        Args:
            settings: Scanner settings (ffprobe_path)
        """
        self.settings = settings

    async def probe(
        self, path: Path, sections: ProbeSection = ProbeSection.DEFAULT
    ) -> ProbeReport | None:
        """Probe a file.

        Args:
            path: Media file to inspect
            sections: Report sections to request

        Returns:
            Parsed report, or None if ffprobe failed or its output was unusable
        """
        args = build_probe_args(self.settings.ffprobe_path, path, sections)
        result = await run_process(args)
        if result is None:
            return None

        if not result.stdout.strip():
            logger.debug(
                f"ffprobe produced no output for {path} "
                f"(exit code {result.returncode}): {result.stderr_text}"
            )
            return None

        try:
            data = json.loads(result.stdout)
            report = ProbeReport.from_json(data, sections)
        except (ValueError, TypeError) as e:
            # json.JSONDecodeError is a ValueError too
            logger.warning(f"Unparsable ffprobe output for {path}: {e}")
            return None

        if result.returncode != 0 and report.error is None:
            logger.debug(
                f"ffprobe exited with {result.returncode} for {path} without an error section"
            )
        return report
