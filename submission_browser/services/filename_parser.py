"""
Filename metadata parser for submission objects.

Submission files are named with underscore-separated segments. Two layouts
are produced by the uploaders:

- standard: ``user_device_123_CameraY_2024-01-02-03-04-05.json.gz``
- combined: ``user_device_123CameraX_2024-01-02-03-04-05.mp4``

Older batch uploads also produced a third segment without leading digits
(``user_device_abc-01_2024-...``); those keep the part before the first dash
as event id.

Parsing never raises: anything that does not fit falls back to defaults.
"""
import re
from datetime import datetime
from typing import List

from ..models.data_models import FilenameMetadata, FileType

UNKNOWN = 'Unknown'
EPOCH = datetime.fromtimestamp(0)

_NUMERIC = re.compile(r'^\d+$')
_LEADING_DIGITS = re.compile(r'^(\d+)')


def parse_timestamp(segment: str) -> datetime:
    """
    Parse a ``YYYY-MM-DD-HH-MM-SS`` segment into a naive local datetime.

    Any extension is stripped first. Returns EPOCH when the segment has fewer
    than six dash-separated parts or the parts are not a valid date.
    """
    stem = segment.split('.')[0]
    parts = stem.split('-')
    if len(parts) < 6:
        return EPOCH

    try:
        year, month, day, hour, minute, second = (int(p) for p in parts[:6])
        return datetime(year, month, day, hour, minute, second)
    except (ValueError, OverflowError):
        return EPOCH


def parse_filename(filename: str) -> FilenameMetadata:
    """Extract event metadata from an object basename."""
    segments: List[str] = filename.split('_')

    metadata = FilenameMetadata(
        event_id=filename,
        user_id=segments[0] or UNKNOWN,
        device_id=(segments[1] if len(segments) > 1 else '') or UNKNOWN,
        camera_model=UNKNOWN,
        timestamp=EPOCH,
        layout='unrecognized'
    )

    if len(segments) < 3:
        return metadata

    segment2 = segments[2]

    if _NUMERIC.match(segment2):
        metadata.layout = 'standard'
        metadata.event_id = segment2
        if len(segments) >= 4:
            metadata.camera_model = segments[3]
        if len(segments) >= 5:
            metadata.timestamp = parse_timestamp(segments[4])
        return metadata

    leading = _LEADING_DIGITS.match(segment2)
    if leading:
        metadata.layout = 'combined'
        metadata.event_id = leading.group(1)
        metadata.camera_model = segment2[leading.end():]
        if len(segments) >= 4:
            metadata.timestamp = parse_timestamp(segments[3])
        return metadata

    # Legacy batch uploads; a dashless segment is not an event id
    parts = segment2.split('-')
    if len(parts) >= 2 and parts[0]:
        metadata.layout = 'legacy'
        metadata.event_id = parts[0]
        if len(segments) >= 4:
            metadata.timestamp = parse_timestamp(segments[3])
    return metadata


def classify_file_type(filename: str) -> FileType:
    """Classify a file by extension, case-insensitively."""
    name = filename.lower()
    if name.endswith('.mp4'):
        return FileType.VIDEO
    if name.endswith('.json.gz'):
        return FileType.JSON_GZ
    if name.endswith('.json'):
        return FileType.JSON
    if name.endswith('.jpg'):
        return FileType.JPG
    return FileType.OTHER
