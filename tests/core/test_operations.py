"""Tests for the operation model and its persisted record form."""

import pytest

from stillbytes.core.operations import (
    BrightnessContrastParameters,
    CropRect,
    CropRotateParameters,
    EditOperation,
    ExposureParameters,
    HslParameters,
    OperationKind,
    OperationSet,
    SharpenParameters,
    ToneCurveParameters,
)
from stillbytes.errors import OperationRecordError


def test_with_parameters_keeps_one_operation_per_kind():
    ops = OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(0.5))
    ops = ops.with_parameters("exposure", ExposureParameters(1.0))

    assert len(ops) == 1
    assert ops.parameters(OperationKind.EXPOSURE) == ExposureParameters(1.0)


def test_replacing_an_operation_keeps_its_position():
    ops = (
        OperationSet.EMPTY.with_parameters("hsl_adjust", HslParameters(hue=10))
        .with_parameters("exposure", ExposureParameters(0.5))
        .with_parameters("brightness_contrast", BrightnessContrastParameters(5, 5))
    )
    replaced = ops.with_parameters("exposure", ExposureParameters(-1.0))

    assert replaced.kinds == (
        OperationKind.HSL_ADJUST,
        OperationKind.EXPOSURE,
        OperationKind.BRIGHTNESS_CONTRAST,
    )
    assert replaced.get("exposure").id != ops.get("exposure").id


def test_sets_are_immutable_values():
    base = OperationSet.EMPTY.with_parameters("exposure", ExposureParameters(0.5))
    derived = base.without("exposure")

    assert "exposure" in base
    assert "exposure" not in derived
    assert derived.is_empty
    assert base.without("sharpen") is base


def test_operation_rejects_mismatched_parameters():
    with pytest.raises(TypeError):
        EditOperation.create("exposure", HslParameters())


def test_records_round_trip_every_kind():
    ops = OperationSet.EMPTY
    for kind, params in [
        ("exposure", ExposureParameters(1.5)),
        ("brightness_contrast", BrightnessContrastParameters(-20, 30)),
        ("hsl_adjust", HslParameters(45, -10, 5)),
        ("tone_curve", ToneCurveParameters(midtones=140)),
        ("sharpen", SharpenParameters(amount=50, radius=2.0)),
        (
            "crop_rotate",
            CropRotateParameters(CropRect(0.1, 0.2, 0.5, 0.5), 90, flip_horizontal=True),
        ),
    ]:
        ops = ops.with_parameters(kind, params)

    restored = OperationSet.from_records(ops.to_records())

    assert restored == ops
    record = ops.to_records()[0]
    assert set(record) == {"id", "kind", "created_at", "schema_version", "parameters"}
    assert record["kind"] == "exposure"


def test_unknown_kind_is_skipped(caplog):
    good = EditOperation.create("exposure", ExposureParameters(1.0)).to_record()
    unknown = dict(good, id="other", kind="vignette")

    with caplog.at_level("WARNING"):
        restored = OperationSet.from_records([unknown, good])

    assert restored.kinds == (OperationKind.EXPOSURE,)
    assert "vignette" in caplog.text


def test_malformed_record_raises():
    record = EditOperation.create("exposure", ExposureParameters(1.0)).to_record()
    record["parameters"] = {"exposure": "bright"}

    with pytest.raises(OperationRecordError):
        EditOperation.from_record(record)

    del record["id"]
    with pytest.raises(OperationRecordError):
        EditOperation.from_record(record)


def test_crop_rect_clamps_to_unit_square():
    crop = CropRect(-0.5, 0.25, 2.0, 0.9).clamped()

    assert crop == CropRect(0.0, 0.25, 1.0, 0.75)


def test_crop_rect_replaces_nan_with_full_frame_defaults():
    nan = float("nan")

    assert CropRect(nan, 0.25, nan, nan).clamped() == CropRect(0.0, 0.25, 1.0, 0.75)
