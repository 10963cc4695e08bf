from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Tuple

BBox = Tuple[float, float, float, float]

# fixed fields of one index entry; every other key may carry an overlay
_FIELDS = frozenset({"timestamp", "date", "trajectory_files", "report_file"})


@dataclass(frozen=True)
class OverlayRef:
    """
    One named, georeferenced raster overlay.

    - `name` : index key it was listed under (e.g. 'satellite_ir108')
    - `file` : path relative to the data base URL
    - `bbox` : (minLon, minLat, maxLon, maxLat)
    """

    name: str
    file: str
    bbox: BBox


@dataclass(frozen=True)
class SnapshotDescriptor:
    """
    Immutable description of one snapshot, as listed in the index resource.

    Semantics:
        - `timestamp`       : epoch seconds, unique key of the snapshot
        - `display_date`    : human readable date supplied by the producer
        - `trajectory_refs` : trajectory document paths, in display order
        - `report_ref`      : optional report document path
        - `overlay_refs`    : zero or more raster overlays
    """

    timestamp: int
    display_date: str
    trajectory_refs: Tuple[str, ...]
    report_ref: str | None = None
    overlay_refs: Tuple[OverlayRef, ...] = ()

    def overlay(self, name: str) -> OverlayRef | None:
        for ref in self.overlay_refs:
            if ref.name == name:
                return ref
        return None

    def to_dict(self) -> Mapping[str, Any]:
        out: dict[str, Any] = {
            "timestamp": self.timestamp,
            "date": self.display_date,
            "trajectory_files": list(self.trajectory_refs),
            "report_file": self.report_ref,
        }
        for ref in self.overlay_refs:
            out[ref.name] = {"file": ref.file, "bbox": list(ref.bbox)}
        return out


def _normalize_bbox(name: str, raw: Any) -> BBox:
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        raise ValueError(f"overlay {name!r}: bbox must be [minLon, minLat, maxLon, maxLat]")
    values = []
    for v in raw:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"overlay {name!r}: bbox values must be numbers")
        values.append(float(v))
    min_lon, min_lat, max_lon, max_lat = values
    if min_lon > max_lon or min_lat > max_lat:
        raise ValueError(f"overlay {name!r}: bbox min exceeds max")
    return (min_lon, min_lat, max_lon, max_lat)


def _normalize_overlay(name: str, raw: Any) -> OverlayRef | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping) or "file" not in raw:
        return None
    file = raw["file"]
    if not isinstance(file, str) or not file:
        raise ValueError(f"overlay {name!r}: file must be a non-empty string")
    return OverlayRef(name=name, file=file, bbox=_normalize_bbox(name, raw.get("bbox")))


def normalize_descriptor(raw: Mapping[str, Any]) -> SnapshotDescriptor:
    """
    Normalize one raw index entry into a SnapshotDescriptor.

    Rules:
        - timestamp must be an integer (bools rejected)
        - trajectory_files must be a list of strings (may be empty)
        - report_file is a string or null / absent
        - any other key holding an object with `file` is an overlay;
          null slots and non-overlay extras are ignored
    Raises ValueError on anything malformed.
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"index entry must be an object, got {type(raw).__name__}")

    ts = raw.get("timestamp")
    if isinstance(ts, bool) or not isinstance(ts, int):
        raise ValueError(f"timestamp must be an integer, got {ts!r}")

    date = raw.get("date")
    if not isinstance(date, str):
        raise ValueError(f"snapshot {ts}: date must be a string")

    files = raw.get("trajectory_files")
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        raise ValueError(f"snapshot {ts}: trajectory_files must be a list of strings")

    report = raw.get("report_file")
    if report is not None and not isinstance(report, str):
        raise ValueError(f"snapshot {ts}: report_file must be a string or null")

    overlays = []
    for key in sorted(k for k in raw if k not in _FIELDS):
        ref = _normalize_overlay(str(key), raw[key])
        if ref is not None:
            overlays.append(ref)

    return SnapshotDescriptor(
        timestamp=int(ts),
        display_date=date,
        trajectory_refs=tuple(files),
        report_ref=report or None,
        overlay_refs=tuple(overlays),
    )
