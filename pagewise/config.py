"""Typed configuration for the analytics engine, built from the YAML config dict."""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


@dataclass
class TrackerConfig:
    inactivity_timeout_ms: int = 30_000
    tick_interval_ms: int = 5_000
    accrual_cap_ms: int = 300_000          # max time attributed per accumulation step
    page_complete_ms: int = 3_000          # dwell before a page counts as read
    section_complete_ratio: float = 0.8    # fraction of pages read to complete a section
    section_debounce_ms: int = 1_000
    max_selections: int = 100
    min_selection_length: int = 3
    average_words_per_page: int = 275
    max_reading_speed: int = 1_000         # words per active minute


@dataclass
class DetectorConfig:
    min_confidence: float = 0.3
    page_mapping_confidence: float = 0.75
    title_match_confidence: float = 0.9
    keyword_weight: float = 0.7
    agreement_boost: float = 1.2
    heading_similarity_threshold: float = 0.6
    heading_similarity_weight: float = 0.8
    dynamic_confidence: float = 0.8
    dynamic_min_font_size: float = 14.0
    dynamic_bold_min_font_size: float = 12.0   # bold text needs at least body-heading size
    heading_anchor_tolerance: float = 30.0     # a heading may sit this far below the pointer
    dynamic_max_length: int = 80
    selection_threshold: float = 0.5
    hover_threshold: float = 0.4
    viewport_threshold: float = 0.5


@dataclass
class StructurerConfig:
    line_tolerance: float = 2.0
    heading_min_height: float = 12.0
    heading_max_length: int = 100


@dataclass
class SignalConfig:
    activity_throttle_ms: int = 100
    hover_throttle_ms: int = 300
    viewport_throttle_ms: int = 500
    autosave_interval_s: float = 30.0


@dataclass
class AnalyticsConfig:
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    structurer: StructurerConfig = field(default_factory=StructurerConfig)
    signals: SignalConfig = field(default_factory=SignalConfig)

    @classmethod
    def from_dict(cls, config: dict | None) -> "AnalyticsConfig":
        config = config or {}
        return cls(
            tracker=_build(TrackerConfig, config.get("tracker")),
            detector=_build(DetectorConfig, config.get("detector")),
            structurer=_build(StructurerConfig, config.get("structurer")),
            signals=_build(SignalConfig, config.get("signals")),
        )


def _build(cls, section: dict | None):
    known = {f.name for f in fields(cls)}
    values = {}
    for key, value in (section or {}).items():
        if key in known:
            values[key] = value
        else:
            logger.warning("Ignoring unknown %s option: %s", cls.__name__, key)
    return cls(**values)


def load_config(config_path: str | Path = "config.yaml") -> dict:
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}
