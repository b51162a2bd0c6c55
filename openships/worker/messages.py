"""
Envelope decoding for the AISstream feed.

Every frame is a JSON object with a ``MessageType`` discriminator, a
``Message`` block keyed by that type and a ``MetaData`` block. Field
spellings drift between feed revisions, so lookups accept the known variants.
"""
from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("openships.decode")

POSITION_MESSAGE_TYPES = (
    "PositionReport",
    "StandardClassBPositionReport",
    "ExtendedClassBPositionReport",
)
STATIC_MESSAGE_TYPES = ("ShipStaticData", "StaticDataReport")

# Epoch values at or above this are milliseconds, below it seconds.
EPOCH_MS_THRESHOLD = 1e12

_METADATA_KEYS = ("MetaData", "Metadata", "metadata", "metaData")
_MMSI_KEYS = ("MMSI", "mmsi", "Mmsi", "MMSI_String")
_TIME_KEYS = ("time_utc", "timeUtc", "TimeUtc", "timestamp", "Timestamp")
_FRACTION = re.compile(r"(\.\d{6})\d+")
_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f %z",
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
)

SHIP_TYPES: dict[int, str] = {
    0: "Not available",
    20: "Wing in ground",
    30: "Fishing",
    31: "Towing",
    33: "Dredger",
    34: "Diving ops",
    35: "Military",
    36: "Sailing",
    37: "Pleasure craft",
    40: "High-speed craft",
    50: "Pilot vessel",
    51: "SAR vessel",
    52: "Tug",
    53: "Port tender",
    55: "Law enforcement",
    58: "Medical transport",
    60: "Passenger",
    70: "Cargo",
    80: "Tanker",
    90: "Other",
}


# ─────────────────────────────────────────────────────────────
# Primitive field helpers
# ─────────────────────────────────────────────────────────────
def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _integer(value: Any) -> int | None:
    num = _number(value)
    if num is None or not num.is_integer():
        return None
    return int(num)


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    # AIS pads six-bit text fields with '@'
    value = value.replace("@", " ").strip()
    return value or None


def _as_mmsi(value: Any) -> int | None:
    if isinstance(value, str):
        value = value.strip()
        mmsi = int(value) if value.isascii() and value.isdigit() else None
    else:
        mmsi = _integer(value)
    if not mmsi or mmsi < 0:
        return None
    return mmsi


def _ship_type_text(code: int | None) -> str | None:
    if code is None:
        return None
    for base, label in sorted(SHIP_TYPES.items(), reverse=True):
        if code >= base:
            return label
    return "Unknown"


def coordinates_valid(lon: float | None, lat: float | None) -> bool:
    return (
        lon is not None
        and lat is not None
        and -180.0 <= lon <= 180.0
        and -90.0 <= lat <= 90.0
    )


# ─────────────────────────────────────────────────────────────
# Envelope helpers
# ─────────────────────────────────────────────────────────────
def decode_frame(raw: str | bytes) -> dict[str, Any] | None:
    """Parse one frame; None when it is not a JSON object."""
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as exc:
        preview = raw[:120] if isinstance(raw, (str, bytes)) else type(raw).__name__
        logger.debug("Dropping undecodable frame (%s): %r", exc, preview)
        return None
    if not isinstance(msg, dict):
        logger.debug("Dropping non-object frame: %s", type(msg).__name__)
        return None
    return msg


def extract_stream_error(msg: dict[str, Any]) -> str | None:
    """
    AISStream docs define server-side failures as: {"error": "..."}.
    Surface these explicitly (e.g., invalid API key/filter type).
    """
    err = msg.get("error") or msg.get("Error")
    if isinstance(err, str):
        err = err.strip()
        return err or None
    return None


def metadata(msg: dict[str, Any], payload: dict[str, Any] | None = None) -> dict[str, Any]:
    for key in _METADATA_KEYS:
        meta = msg.get(key)
        if isinstance(meta, dict):
            return meta
    if payload:
        for key in _METADATA_KEYS:
            meta = payload.get(key)
            if isinstance(meta, dict):
                return meta
    return {}


def message_payload(msg: dict[str, Any], types: tuple[str, ...]) -> dict[str, Any] | None:
    body = msg.get("Message")
    if not isinstance(body, dict):
        return None
    label = msg.get("MessageType")
    candidates = (label, *types) if label in types else types
    for key in candidates:
        payload = body.get(key)
        if isinstance(payload, dict):
            return payload
    return None


def extract_mmsi(msg: dict[str, Any], payload: dict[str, Any] | None = None) -> int | None:
    meta = metadata(msg, payload)
    for key in _MMSI_KEYS:
        mmsi = _as_mmsi(meta.get(key))
        if mmsi:
            return mmsi
    if payload:
        for key in ("UserID", *_MMSI_KEYS):
            mmsi = _as_mmsi(payload.get(key))
            if mmsi:
                return mmsi
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """
    Lenient observation-time parser.

    Numbers are epoch seconds, or milliseconds from EPOCH_MS_THRESHOLD up.
    Strings may be numeric, ISO-8601, or AISstream's
    ``2022-12-29 18:22:32.318353 +0000 UTC``. Returns an aware UTC datetime.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return None
        seconds = value / 1000.0 if value >= EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None
    try:
        return parse_timestamp(float(raw))
    except ValueError:
        pass

    if raw.endswith(" UTC"):
        raw = raw[: -len(" UTC")]
    raw = _FRACTION.sub(r"\1", raw)
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _TIME_FORMATS:
            try:
                parsed = datetime.strptime(raw, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


# ─────────────────────────────────────────────────────────────
# Message variants
# ─────────────────────────────────────────────────────────────
@dataclass(slots=True)
class PositionReport:
    mmsi: int
    ship_name: str | None
    navigational_status: int | None
    rot: float | None
    sog: float | None
    cog: float | None
    true_heading: int | None
    longitude: float | None
    latitude: float | None
    special_manoeuvre_indicator: int | None
    timestamp: datetime | None

    @property
    def position_valid(self) -> bool:
        return coordinates_valid(self.longitude, self.latitude)

    def current_state(self) -> dict[str, Any]:
        """Row for current_positions; invalid coordinates are not written."""
        valid = self.position_valid
        return {
            "mmsi": self.mmsi,
            "ship_name": self.ship_name,
            "navigational_status": self.navigational_status,
            "rot": self.rot,
            "sog": self.sog,
            "cog": self.cog,
            "true_heading": self.true_heading,
            "longitude": self.longitude if valid else None,
            "latitude": self.latitude if valid else None,
            "special_manoeuvre_indicator": self.special_manoeuvre_indicator,
            "timestamp": self.timestamp,
        }

    def history_record(self) -> dict[str, Any]:
        if not self.position_valid or self.timestamp is None:
            raise ValueError(f"MMSI {self.mmsi}: no valid position/timestamp to record")
        row = self.current_state()
        del row["ship_name"]
        return row


@dataclass(slots=True)
class StaticReport:
    mmsi: int
    imo: int | None
    call_sign: str | None
    ship_name: str | None
    destination: str | None
    dimension_a: int | None
    dimension_b: int | None
    dimension_c: int | None
    dimension_d: int | None
    ship_type: int | None
    ship_type_text: str | None
    max_draught: float | None
    eta: datetime | None
    last_updated: datetime | None

    def row(self) -> dict[str, Any]:
        return {
            "mmsi": self.mmsi,
            "imo": self.imo,
            "call_sign": self.call_sign,
            "ship_name": self.ship_name,
            "destination": self.destination,
            "dimension_a": self.dimension_a,
            "dimension_b": self.dimension_b,
            "dimension_c": self.dimension_c,
            "dimension_d": self.dimension_d,
            "ship_type": self.ship_type,
            "ship_type_text": self.ship_type_text,
            "max_draught": self.max_draught,
            "eta": self.eta,
            "last_updated": self.last_updated,
        }


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def decode_position(msg: dict[str, Any]) -> PositionReport | None:
    """Decode a position envelope; None when the payload or MMSI is missing."""
    payload = message_payload(msg, POSITION_MESSAGE_TYPES)
    if payload is None:
        return None
    mmsi = extract_mmsi(msg, payload)
    if mmsi is None:
        return None
    meta = metadata(msg, payload)

    lon = _number(_first(payload, "Longitude", "longitude"))
    lat = _number(_first(payload, "Latitude", "latitude"))
    if lon is None and lat is None:
        lon = _number(_first(meta, "longitude", "Longitude"))
        lat = _number(_first(meta, "latitude", "Latitude"))

    return PositionReport(
        mmsi=mmsi,
        ship_name=_text(_first(meta, "ShipName", "shipName", "ship_name")),
        navigational_status=_integer(payload.get("NavigationalStatus")),
        rot=_number(payload.get("RateOfTurn")),
        sog=_number(payload.get("Sog")),
        cog=_number(payload.get("Cog")),
        true_heading=_integer(payload.get("TrueHeading")),
        longitude=lon,
        latitude=lat,
        special_manoeuvre_indicator=_integer(payload.get("SpecialManoeuvreIndicator")),
        timestamp=parse_timestamp(_first(meta, *_TIME_KEYS)),
    )


def _eta(raw: Any, observed: datetime | None) -> datetime | None:
    """
    AIS ETA carries month/day/hour/minute only. The year is taken from the
    observation time, rolled forward when the date already lies well behind it.
    """
    if not isinstance(raw, dict):
        return None
    month = _integer(raw.get("Month")) or 0
    day = _integer(raw.get("Day")) or 0
    hour = _integer(raw.get("Hour")) or 0
    minute = _integer(raw.get("Minute")) or 0
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    # 24 / 60 mean "not available"
    hour = hour if hour < 24 else 0
    minute = minute if minute < 60 else 0
    reference = observed or datetime.now(timezone.utc)
    year = _integer(raw.get("Year")) or reference.year
    try:
        eta = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
        if raw.get("Year") is None and (reference - eta).days > 183:
            eta = eta.replace(year=year + 1)
    except ValueError:
        return None
    return eta


def decode_static(msg: dict[str, Any]) -> StaticReport | None:
    """Decode ShipStaticData (type 5) or StaticDataReport (type 24 A/B)."""
    payload = message_payload(msg, STATIC_MESSAGE_TYPES)
    if payload is None:
        return None
    mmsi = extract_mmsi(msg, payload)
    if mmsi is None:
        return None
    meta = metadata(msg, payload)
    observed = parse_timestamp(_first(meta, *_TIME_KEYS))

    # Class B reports split the static data across two parts.
    report_a = payload.get("ReportA") if isinstance(payload.get("ReportA"), dict) else {}
    report_b = payload.get("ReportB") if isinstance(payload.get("ReportB"), dict) else {}
    if report_a and report_a.get("Valid") is False:
        report_a = {}
    if report_b and report_b.get("Valid") is False:
        report_b = {}
    merged = {**payload, **report_a, **report_b}

    dim = merged.get("Dimension") if isinstance(merged.get("Dimension"), dict) else {}
    code = _integer(_first(merged, "Type", "ShipType"))
    imo = _integer(merged.get("ImoNumber"))
    return StaticReport(
        mmsi=mmsi,
        imo=imo or None,
        call_sign=_text(_first(merged, "CallSign", "callSign")),
        ship_name=_text(_first(merged, "Name", "name")) or _text(meta.get("ShipName")),
        destination=_text(_first(merged, "Destination", "destination")),
        dimension_a=_integer(dim.get("A")),
        dimension_b=_integer(dim.get("B")),
        dimension_c=_integer(dim.get("C")),
        dimension_d=_integer(dim.get("D")),
        ship_type=code,
        ship_type_text=_ship_type_text(code),
        max_draught=_number(merged.get("MaximumStaticDraught")),
        eta=_eta(merged.get("Eta"), observed),
        last_updated=observed,
    )
