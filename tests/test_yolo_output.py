import logging
import math

import numpy as np
import pytest

from card_autocapture.detectors.yolo_output import Layout, decode_output, detect_layout
from card_autocapture.errors import DecodeError
from card_autocapture.vision.geometry import compute_frame_geometry, frame_to_model
from card_autocapture.vision.types import Box, FrameGeometry

G_1280x720 = FrameGeometry(
    input_size=640,
    original_width=1280,
    original_height=720,
    top_padding=160,
    left_padding=0,
    scale=0.5,
)


def test_single_row_output_decodes_to_frame_space() -> None:
    out = decode_output([[[0.5, 0.5, 0.2, 0.2, 0.9]]], G_1280x720, confidence_threshold=0.8)

    assert len(out) == 1
    d = out[0]
    assert d.confidence == pytest.approx(0.9)
    # model box (256, 256, 128, 128) -> frame ((256-0)/0.5, (256-160)/0.5, 256, 256)
    assert (d.box.x, d.box.y) == pytest.approx((512.0, 192.0))
    assert (d.box.width, d.box.height) == pytest.approx((256.0, 256.0))
    assert d.box.center() == pytest.approx((640.0, 320.0))
    assert d.aspect_ratio == pytest.approx(1.0)
    # square box scores 0 on aspect; 256*256 / (1280*720) ~ 0.071 -> area score 0.7
    assert d.alignment_score == pytest.approx(0.4 * 0.7)


def test_explicit_layout_is_used() -> None:
    out = decode_output(
        [[0.5, 0.5, 0.2, 0.2, 0.9]],
        G_1280x720,
        confidence_threshold=0.8,
        layout=Layout.ROWS,
    )
    assert [d.confidence for d in out] == [pytest.approx(0.9)]


def test_channel_major_numpy_output() -> None:
    arr = np.array(
        [
            [
                [0.5, 0.4, 0.3],  # cx
                [0.5, 0.4, 0.3],  # cy
                [0.2, 0.1, 0.1],  # w
                [0.1, 0.1, 0.1],  # h
                [0.9, 0.95, 0.5],  # conf
                [1.0, 1.0, 1.0],  # class
            ]
        ],
        dtype=np.float32,
    )
    assert detect_layout(arr) is Layout.CHANNELS
    out = decode_output(arr, G_1280x720, confidence_threshold=0.8)
    assert [round(d.confidence, 2) for d in out] == [0.95, 0.9]


def test_row_major_numpy_output_with_many_candidates() -> None:
    arr = np.zeros((1, 40, 6), dtype=np.float32)
    arr[0, 3] = [0.5, 0.5, 0.3, 0.2, 0.87, 1.0]
    arr[0, 17] = [0.4, 0.6, 0.3, 0.2, 0.93, 1.0]
    assert detect_layout(arr) is Layout.ROWS
    out = decode_output(arr, G_1280x720, confidence_threshold=0.85)
    assert [round(d.confidence, 2) for d in out] == [0.93, 0.87]


@pytest.mark.parametrize(
    ("shape", "expected"),
    [
        ((1, 8400, 5), Layout.ROWS),
        ((1, 5, 8400), Layout.CHANNELS),
        ((7, 6), Layout.ROWS),
        ((6, 6), Layout.CHANNELS),
        ((1, 1, 5), Layout.ROWS),
        ((6, 2), Layout.CHANNELS),
    ],
)
def test_detect_layout(shape: tuple[int, ...], expected: Layout) -> None:
    assert detect_layout(np.zeros(shape)) is expected


@pytest.mark.parametrize("bad", [[], "tensor", [1.0, 2.0, 3.0], [[1, 2], [3, 4]], [[[]]]])
def test_malformed_output_raises_decode_error(bad: object) -> None:
    with pytest.raises(DecodeError):
        decode_output(bad, G_1280x720, confidence_threshold=0.5)


def test_channel_layout_with_too_few_channels_raises() -> None:
    with pytest.raises(DecodeError):
        decode_output(
            [[0.5, 0.5], [0.5, 0.5], [0.1, 0.1]],
            G_1280x720,
            confidence_threshold=0.5,
            layout=Layout.CHANNELS,
        )


def test_threshold_is_strict() -> None:
    rows = [[0.5, 0.5, 0.2, 0.2, 0.8], [0.5, 0.5, 0.2, 0.2, 0.80001]]
    out = decode_output(rows, G_1280x720, confidence_threshold=0.8, layout=Layout.ROWS)
    assert len(out) == 1
    assert out[0].confidence > 0.8


def test_missing_values_and_bad_rows_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    rows = [
        [0.5, 0.5, 0.2, 0.2, None],
        [0.5, 0.5, 0.2],
        ["x", 0.5, 0.2, 0.2, 0.99],
        [0.5, 0.5, 0.2, 0.2, math.nan],
        [0.5, 0.5, 0.2, 0.2, 0.9],
    ]
    with caplog.at_level(logging.WARNING):
        out = decode_output(rows, G_1280x720, confidence_threshold=0.5, layout=Layout.ROWS)
    assert [d.confidence for d in out] == [0.9]
    assert "Skipped 1 undecodable rows" in caplog.text


def test_ragged_channels_skip_incomplete_indices() -> None:
    channels = [
        [0.5, 0.5, 0.5],
        [0.5, 0.5, 0.5],
        [0.2, 0.2, 0.2],
        [0.2, 0.2, 0.2],
        [0.9, 0.95],
    ]
    out = decode_output(channels, G_1280x720, confidence_threshold=0.5)
    assert [d.confidence for d in out] == [0.95, 0.9]


def test_nan_coordinates_score_zero() -> None:
    rows = [[math.nan, 0.5, 0.2, math.nan, 0.9]]
    out = decode_output(rows, G_1280x720, confidence_threshold=0.5, layout=Layout.ROWS)
    assert len(out) == 1
    assert out[0].alignment_score == 0.0


def test_equal_confidences_keep_encounter_order() -> None:
    rows = [[0.1 * (i + 1), 0.5, 0.1, 0.1, 0.9] for i in range(6)]
    out = decode_output(rows, G_1280x720, confidence_threshold=0.5, layout=Layout.ROWS)
    xs = [d.box.x for d in out]
    assert xs == sorted(xs)


def test_random_output_is_filtered_and_sorted() -> None:
    rng = np.random.default_rng(0)
    arr = rng.uniform(0.0, 1.0, size=(1, 300, 6))
    out = decode_output(arr, G_1280x720, confidence_threshold=0.6)
    assert out
    assert all(d.confidence > 0.6 for d in out)
    confs = [d.confidence for d in out]
    assert confs == sorted(confs, reverse=True)
    assert all(0.0 <= d.alignment_score <= 1.0 for d in out)


def test_custom_scorer_is_used() -> None:
    calls: list[tuple[float, float, float, float]] = []

    def scorer(aspect: float, area: float, w: float, h: float) -> float:
        calls.append((aspect, area, w, h))
        return 0.42

    out = decode_output(
        [[0.5, 0.5, 0.2, 0.2, 0.9]],
        G_1280x720,
        confidence_threshold=0.5,
        layout=Layout.ROWS,
        scorer=scorer,
    )
    assert out[0].alignment_score == 0.42
    assert calls == [(pytest.approx(1.0), pytest.approx(65536.0), 1280, 720)]


def test_decoded_box_matches_frame_box_through_letterbox() -> None:
    g = compute_frame_geometry(1920, 1080, 640)
    frame_box = Box(x=500.0, y=300.0, width=800.0, height=504.7)
    m = frame_to_model(frame_box, g)
    s = g.input_size
    cx, cy = (m.x + m.width / 2) / s, (m.y + m.height / 2) / s
    row = [cx, cy, m.width / s, m.height / s, 0.97]

    out = decode_output([row], g, confidence_threshold=0.85, layout=Layout.ROWS)
    b = out[0].box
    assert (b.x, b.y, b.width, b.height) == pytest.approx((500.0, 300.0, 800.0, 504.7))
    assert out[0].alignment_score > 0.9


def test_list_of_row_arrays_is_decoded() -> None:
    rows = [np.array([0.5, 0.5, 0.2, 0.2, 0.9])] + [np.zeros(5)] * 19
    out = decode_output(rows, G_1280x720, confidence_threshold=0.5)
    assert len(out) == 1
    assert out[0].confidence == pytest.approx(0.9)


def test_first_of_several_output_tensors_is_decoded() -> None:
    arr = np.zeros((1, 20, 5))
    arr[0, 4] = [0.5, 0.5, 0.2, 0.2, 0.9]
    extra = np.ones((1, 32, 160, 160))

    assert detect_layout([arr, extra]) is Layout.ROWS
    out = decode_output([arr], G_1280x720, confidence_threshold=0.5)
    assert [d.confidence for d in out] == [pytest.approx(0.9)]
    out = decode_output((arr, extra), G_1280x720, confidence_threshold=0.5)
    assert len(out) == 1


def test_unexpected_scorer_errors_propagate() -> None:
    def scorer(aspect: float, area: float, w: float, h: float) -> float:
        raise KeyError("missing weight")

    with pytest.raises(KeyError):
        decode_output(
            [[0.5, 0.5, 0.2, 0.2, 0.9]],
            G_1280x720,
            confidence_threshold=0.5,
            layout=Layout.ROWS,
            scorer=scorer,
        )
