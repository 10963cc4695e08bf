from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Literal, Mapping, Optional, Tuple

FeatureType = Literal["analysis", "forecast", "uncertainty_cone"]
FEATURE_TYPES: Tuple[FeatureType, ...] = ("analysis", "forecast", "uncertainty_cone")

# literal divider line used inside report text blocks
REPORT_SEPARATOR = "-" * 49


@dataclass(frozen=True)
class ReportBlock:
    kind: Literal["title", "text", "separator"]
    text: str = ""


@dataclass(frozen=True)
class LoadedSnapshot:
    """
    Fully materialized content of one snapshot.

    - `trajectories` : one decoded document per descriptor trajectory ref, same order
    - `report`       : decoded report document, None if absent or unfetchable

    Owned by SnapshotCache once created; never mutated.
    """

    timestamp: int
    display_date: str
    trajectories: Tuple[Mapping[str, Any], ...]
    report: Optional[Mapping[str, Any]] = None

    # ------------------------------------------------------------------
    # Trajectory helpers
    # ------------------------------------------------------------------
    def _trajectory_objects(self) -> Iterator[Mapping[str, Any]]:
        for doc in self.trajectories:
            obj = doc.get("cyclone_trajectory") if isinstance(doc, Mapping) else None
            if isinstance(obj, Mapping):
                yield obj

    def cyclone_names(self) -> List[str]:
        names = []
        for obj in self._trajectory_objects():
            name = obj.get("cyclone_name")
            if name and name not in names:
                names.append(str(name))
        return names

    def features_by_type(self) -> Dict[str, List[Mapping[str, Any]]]:
        """Group every trajectory feature by its `data_type` tag (unknown tags dropped)."""
        out: Dict[str, List[Mapping[str, Any]]] = {t: [] for t in FEATURE_TYPES}
        for obj in self._trajectory_objects():
            for feature in obj.get("features") or []:
                props = feature.get("properties") or {}
                kind = props.get("data_type")
                if kind in out:
                    out[kind].append(feature)
        return out

    # ------------------------------------------------------------------
    # Report helpers
    # ------------------------------------------------------------------
    def report_blocks(self) -> List[ReportBlock]:
        if not self.report:
            return []
        blocks: List[ReportBlock] = []
        for item in self.report.get("text_bloc_item") or []:
            title = item.get("bloc_title")
            text = item.get("text")
            if title:
                blocks.append(ReportBlock("title", str(title)))
            elif text == REPORT_SEPARATOR:
                blocks.append(ReportBlock("separator"))
            elif text and text.strip():
                blocks.append(ReportBlock("text", text))
        return blocks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "date": self.display_date,
            "trajectories": list(self.trajectories),
            "report": self.report,
        }
