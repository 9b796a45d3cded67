"""Typed, versioned adjustment records and the one-per-kind operation set.

Operations are immutable values.  An :class:`OperationSet` maps each
:class:`OperationKind` to at most one :class:`EditOperation`; replacing an
operation keeps its storage position so persisted lists stay stable while the
render pipeline applies stages in its own fixed order.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Iterable, Iterator, Mapping, Union

from ..config import OPERATION_SCHEMA_VERSION
from ..errors import OperationRecordError

_LOGGER = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """Identify the adjustment an :class:`EditOperation` carries."""

    EXPOSURE = "exposure"
    BRIGHTNESS_CONTRAST = "brightness_contrast"
    HSL_ADJUST = "hsl_adjust"
    TONE_CURVE = "tone_curve"
    SHARPEN = "sharpen"
    CROP_ROTATE = "crop_rotate"


def _number(payload: Mapping[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise OperationRecordError(f"Parameter {key!r} must be a number, got {value!r}")
    return float(value)


def _or_default(value: float, default: float) -> float:
    return default if math.isnan(value) else value


def _flag(payload: Mapping[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if not isinstance(value, bool):
        raise OperationRecordError(f"Parameter {key!r} must be a boolean, got {value!r}")
    return value


@dataclass(frozen=True)
class ExposureParameters:
    """Exposure shift in photographic stops, ``[-3, 3]``."""

    exposure: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ExposureParameters:
        return cls(exposure=_number(payload, "exposure", 0.0))

    def to_dict(self) -> dict[str, Any]:
        return {"exposure": self.exposure}


@dataclass(frozen=True)
class BrightnessContrastParameters:
    """Brightness and contrast, each in ``[-100, 100]``."""

    brightness: float = 0.0
    contrast: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> BrightnessContrastParameters:
        return cls(
            brightness=_number(payload, "brightness", 0.0),
            contrast=_number(payload, "contrast", 0.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"brightness": self.brightness, "contrast": self.contrast}


@dataclass(frozen=True)
class HslParameters:
    """Hue rotation in degrees plus relative saturation and lightness shifts."""

    hue: float = 0.0
    saturation: float = 0.0
    lightness: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> HslParameters:
        return cls(
            hue=_number(payload, "hue", 0.0),
            saturation=_number(payload, "saturation", 0.0),
            lightness=_number(payload, "lightness", 0.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"hue": self.hue, "saturation": self.saturation, "lightness": self.lightness}


@dataclass(frozen=True)
class ToneCurveParameters:
    """Five-point tone curve expressed as 8-bit output levels."""

    blacks: float = 0.0
    shadows: float = 64.0
    midtones: float = 128.0
    highlights: float = 192.0
    whites: float = 255.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ToneCurveParameters:
        return cls(
            blacks=_number(payload, "blacks", cls.blacks),
            shadows=_number(payload, "shadows", cls.shadows),
            midtones=_number(payload, "midtones", cls.midtones),
            highlights=_number(payload, "highlights", cls.highlights),
            whites=_number(payload, "whites", cls.whites),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "blacks": self.blacks,
            "shadows": self.shadows,
            "midtones": self.midtones,
            "highlights": self.highlights,
            "whites": self.whites,
        }


@dataclass(frozen=True)
class SharpenParameters:
    """Unsharp-mask style amount ``[0, 100]`` and radius ``[0.5, 5.0]``."""

    amount: float = 0.0
    radius: float = 1.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SharpenParameters:
        return cls(
            amount=_number(payload, "amount", 0.0),
            radius=_number(payload, "radius", 1.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "radius": self.radius}


@dataclass(frozen=True)
class CropRect:
    """Crop window in source-normalised coordinates."""

    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0

    def clamped(self) -> CropRect:
        """Return a copy limited to the unit square with a non-empty extent.

        NaN fields fall back to the full-frame defaults.
        """

        x = min(max(_or_default(self.x, 0.0), 0.0), 1.0)
        y = min(max(_or_default(self.y, 0.0), 0.0), 1.0)
        width = min(max(_or_default(self.width, 1.0), 0.0), 1.0 - x)
        height = min(max(_or_default(self.height, 1.0), 0.0), 1.0 - y)
        return CropRect(x, y, width, height)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CropRect:
        return cls(
            x=_number(payload, "x", 0.0),
            y=_number(payload, "y", 0.0),
            width=_number(payload, "width", 1.0),
            height=_number(payload, "height", 1.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class CropRotateParameters:
    """Crop window, clockwise rotation in degrees and optional mirroring."""

    crop: CropRect = field(default_factory=CropRect)
    rotation: float = 0.0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> CropRotateParameters:
        crop_payload = payload.get("crop", {})
        if not isinstance(crop_payload, Mapping):
            raise OperationRecordError(f"Parameter 'crop' must be an object, got {crop_payload!r}")
        return cls(
            crop=CropRect.from_dict(crop_payload),
            rotation=_number(payload, "rotation", 0.0),
            flip_horizontal=_flag(payload, "flip_horizontal"),
            flip_vertical=_flag(payload, "flip_vertical"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "crop": self.crop.to_dict(),
            "rotation": self.rotation,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


OperationParameters = Union[
    ExposureParameters,
    BrightnessContrastParameters,
    HslParameters,
    ToneCurveParameters,
    SharpenParameters,
    CropRotateParameters,
]

PARAMETER_TYPES: Mapping[OperationKind, type] = {
    OperationKind.EXPOSURE: ExposureParameters,
    OperationKind.BRIGHTNESS_CONTRAST: BrightnessContrastParameters,
    OperationKind.HSL_ADJUST: HslParameters,
    OperationKind.TONE_CURVE: ToneCurveParameters,
    OperationKind.SHARPEN: SharpenParameters,
    OperationKind.CROP_ROTATE: CropRotateParameters,
}
"""Parameter struct expected for each operation kind."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise OperationRecordError(f"created_at must be an ISO-8601 string, got {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise OperationRecordError(f"Invalid created_at timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class EditOperation:
    """A single adjustment record attached to a photo's edit state."""

    id: str
    kind: OperationKind
    parameters: OperationParameters
    created_at: datetime = field(default_factory=_utcnow)
    schema_version: int = OPERATION_SCHEMA_VERSION

    def __post_init__(self) -> None:
        expected = PARAMETER_TYPES[self.kind]
        if not isinstance(self.parameters, expected):
            raise TypeError(
                f"{self.kind.value} expects {expected.__name__}, "
                f"got {type(self.parameters).__name__}"
            )

    @classmethod
    def create(cls, kind: OperationKind | str, parameters: OperationParameters) -> EditOperation:
        """Return a new operation with a fresh identifier and timestamp."""

        return cls(id=str(uuid.uuid4()), kind=OperationKind(kind), parameters=parameters)

    def to_record(self) -> dict[str, Any]:
        """Return the persisted representation of the operation."""

        return {
            "id": self.id,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat(),
            "schema_version": self.schema_version,
            "parameters": self.parameters.to_dict(),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> EditOperation:
        """Decode a persisted record.

        Raises :class:`OperationRecordError` for malformed records and
        :class:`ValueError` when ``kind`` names an unknown operation.
        """

        if not isinstance(record, Mapping):
            raise OperationRecordError(f"Operation record must be an object, got {record!r}")
        try:
            op_id = record["id"]
            kind_name = record["kind"]
            parameters = record["parameters"]
        except KeyError as exc:
            raise OperationRecordError(f"Operation record is missing {exc.args[0]!r}") from exc
        if not isinstance(op_id, str) or not op_id:
            raise OperationRecordError(f"Operation id must be a non-empty string, got {op_id!r}")
        if not isinstance(parameters, Mapping):
            raise OperationRecordError(f"Operation parameters must be an object, got {parameters!r}")
        schema_version = record.get("schema_version", OPERATION_SCHEMA_VERSION)
        if isinstance(schema_version, bool) or not isinstance(schema_version, int):
            raise OperationRecordError(f"schema_version must be an integer, got {schema_version!r}")

        kind = OperationKind(kind_name)
        if schema_version > OPERATION_SCHEMA_VERSION:
            _LOGGER.warning(
                "Operation %s uses schema version %d (newer than %d); reading known fields only",
                op_id,
                schema_version,
                OPERATION_SCHEMA_VERSION,
            )
        params_type = PARAMETER_TYPES[kind]
        return cls(
            id=op_id,
            kind=kind,
            parameters=params_type.from_dict(parameters),
            created_at=_parse_timestamp(record.get("created_at", _utcnow().isoformat())),
            schema_version=schema_version,
        )


class OperationSet:
    """Immutable collection holding at most one :class:`EditOperation` per kind.

    Iteration yields operations in storage (insertion) order.  Every mutator
    returns a new set, which lets history snapshots share instances safely.
    """

    __slots__ = ("_operations",)

    EMPTY: ClassVar[OperationSet]

    def __init__(self, operations: Iterable[EditOperation] = ()) -> None:
        ordered: dict[OperationKind, EditOperation] = {}
        for operation in operations:
            # Re-assigning an existing key keeps its original dict position.
            ordered[operation.kind] = operation
        self._operations = ordered

    # ------------------------------------------------------------------
    def __iter__(self) -> Iterator[EditOperation]:
        return iter(self._operations.values())

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, kind: object) -> bool:
        try:
            return OperationKind(kind) in self._operations  # type: ignore[arg-type]
        except ValueError:
            return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OperationSet):
            return NotImplemented
        return list(self._operations.values()) == list(other._operations.values())

    def __hash__(self) -> int:
        return hash(tuple(op.id for op in self._operations.values()))

    def __repr__(self) -> str:
        kinds = ", ".join(kind.value for kind in self._operations)
        return f"OperationSet([{kinds}])"

    @property
    def is_empty(self) -> bool:
        return not self._operations

    @property
    def kinds(self) -> tuple[OperationKind, ...]:
        return tuple(self._operations)

    def get(self, kind: OperationKind | str) -> EditOperation | None:
        return self._operations.get(OperationKind(kind))

    def parameters(self, kind: OperationKind | str) -> OperationParameters | None:
        """Return the parameter struct stored for *kind*, if any."""

        operation = self.get(kind)
        return None if operation is None else operation.parameters

    # ------------------------------------------------------------------
    def with_operation(self, operation: EditOperation) -> OperationSet:
        """Return a set where *operation* replaces any prior one of its kind."""

        updated = OperationSet()
        updated._operations = dict(self._operations)
        updated._operations[operation.kind] = operation
        return updated

    def with_parameters(
        self,
        kind: OperationKind | str,
        parameters: OperationParameters,
    ) -> OperationSet:
        """Create a fresh operation for *kind* and store it in place."""

        return self.with_operation(EditOperation.create(kind, parameters))

    def without(self, kind: OperationKind | str) -> OperationSet:
        """Return a set with the operation of *kind* removed."""

        key = OperationKind(kind)
        if key not in self._operations:
            return self
        updated = OperationSet()
        updated._operations = {k: v for k, v in self._operations.items() if k is not key}
        return updated

    # ------------------------------------------------------------------
    def to_records(self) -> list[dict[str, Any]]:
        """Serialise the set as an ordered list of persisted records."""

        return [operation.to_record() for operation in self._operations.values()]

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> OperationSet:
        """Decode persisted records, skipping kinds this build does not know."""

        operations: list[EditOperation] = []
        for record in records:
            try:
                operations.append(EditOperation.from_record(record))
            except ValueError:
                _LOGGER.warning("Skipping operation with unknown kind %r", record.get("kind"))
        return cls(operations)


OperationSet.EMPTY = OperationSet()


__all__ = [
    "BrightnessContrastParameters",
    "CropRect",
    "CropRotateParameters",
    "EditOperation",
    "ExposureParameters",
    "HslParameters",
    "OperationKind",
    "OperationParameters",
    "OperationSet",
    "PARAMETER_TYPES",
    "SharpenParameters",
    "ToneCurveParameters",
]
