import numpy as np
import pytest

from candle_digitizer.models import CandleRole, ColorCluster, KMeansParams, RGBColor
from candle_digitizer.nodes.candle_colors import (
    analyze_histogram,
    classify_color,
    color_distance,
    detect_candle_colors,
    extract_unique_colors,
    kmeans,
    merge_clusters,
)
from candle_digitizer.utils.cv_utils import PixelBuffer
from tests.synthetic import generate_test_case, render_chart
from tests.synthetic.renderer import BEARISH, BULLISH, WICK


def _cluster(rgb, count, role=CandleRole.BULLISH_FILL, confidence=0.9):
    return ColorCluster(color=RGBColor.from_sequence(rgb), pixel_count=count, confidence=confidence, role=role)


def test_color_distance():
    assert color_distance((0, 0, 0), (255, 255, 255)) == pytest.approx(441.67, abs=0.01)
    assert color_distance(RGBColor(r=1, g=2, b=3), (1, 2, 3)) == 0.0


@pytest.mark.parametrize(
    ("rgb", "role"),
    [
        ((0, 128, 0), CandleRole.BULLISH_FILL),
        ((0, 150, 0), CandleRole.BULLISH_FILL),
        ((200, 0, 0), CandleRole.BEARISH_FILL),
        ((0, 0, 200), CandleRole.WICK),
        ((255, 255, 255), CandleRole.BACKGROUND),
        ((0, 0, 0), CandleRole.BACKGROUND),
        ((210, 250, 210), CandleRole.BULLISH_STROKE),
    ],
)
def test_classify_color(rgb, role):
    assert classify_color(rgb)[0] == role


def test_classify_color_confidence_falls_with_distance():
    _, exact = classify_color((0, 128, 0))
    _, near = classify_color((0, 150, 0))
    assert exact == 1.0
    assert 0.0 < near < exact


def test_kmeans_separates_groups():
    colors = np.array(
        [[0, 0, 0], [2, 2, 2], [255, 0, 0], [250, 5, 0], [0, 0, 255], [0, 5, 250]], dtype=np.uint8
    )
    result = kmeans(colors, 3)
    assert len(result.centroids) == 3
    assert sorted(result.counts.tolist()) == [2, 2, 2]
    a = result.assignments
    assert a[0] == a[1] and a[2] == a[3] and a[4] == a[5]
    assert len({a[0], a[2], a[4]}) == 3


def test_kmeans_weights_pull_centroid():
    colors = np.array([[0, 0, 0], [100, 100, 100]])
    result = kmeans(colors, 1, weights=np.array([3, 1]))
    assert result.centroids[0] == pytest.approx([25, 25, 25])
    assert result.counts.tolist() == [4]


def test_kmeans_shrinks_k_to_distinct_colors():
    result = kmeans(np.array([[1, 1, 1], [1, 1, 1], [9, 9, 9]]), 5)
    assert len(result.centroids) == 2
    assert all(n > 0 for n in result.counts)


@pytest.mark.parametrize(("colors", "k"), [(np.empty((0, 3)), 3), (np.array([[1, 2, 3]]), 0)])
def test_kmeans_empty(colors, k):
    result = kmeans(colors, k)
    assert result.centroids.shape == (0, 3)
    assert len(result.counts) == 0


def test_kmeans_is_deterministic():
    rng = np.random.default_rng(3)
    colors = rng.integers(0, 256, size=(200, 3))
    a = kmeans(colors, 4, seed=11)
    b = kmeans(colors, 4, seed=11)
    assert np.array_equal(a.centroids, b.centroids)
    assert np.array_equal(a.assignments, b.assignments)


def test_histogram_bins_colors():
    colors = np.full((50, 3), (255, 0, 0), dtype=np.uint8)
    bins = analyze_histogram(colors, bin_size=64, min_frequency=0.01)
    assert len(bins) == 1
    assert bins[0].color == (192, 0, 0)
    assert bins[0].frequency == 1.0
    assert bins[0].count == 50


def test_histogram_drops_rare_colors():
    colors = np.vstack(
        [np.full((99, 3), (0, 200, 0), dtype=np.uint8), np.full((1, 3), (0, 0, 200), dtype=np.uint8)]
    )
    bins = analyze_histogram(colors, bin_size=16, min_frequency=0.05)
    assert [b.color for b in bins] == [(0, 192, 0)]
    assert analyze_histogram(np.empty((0, 3), dtype=np.uint8)) == []


def test_extract_unique_colors_bins_to_floor():
    unique, counts = extract_unique_colors(np.array([[10, 20, 30], [12, 17, 31]], dtype=np.uint8), 16)
    assert unique.tolist() == [[0, 16, 16]]
    assert counts.tolist() == [2]


def test_merge_clusters_folds_near_colors():
    merged = merge_clusters(
        [
            _cluster((0, 128, 0), 100, confidence=0.7),
            _cluster((5, 130, 0), 10, confidence=0.95),
            _cluster((200, 0, 0), 40, role=CandleRole.BEARISH_FILL),
        ]
    )
    assert len(merged) == 2
    green = next(c for c in merged if c.role == CandleRole.BULLISH_FILL)
    assert green.color.as_tuple() == (0, 128, 0)
    assert green.pixel_count == 110
    assert green.confidence == 0.95


def test_merge_clusters_keeps_role_with_most_pixels():
    merged = merge_clusters(
        [
            _cluster((0, 0, 150), 10, role=CandleRole.WICK),
            _cluster((0, 0, 160), 50, role=CandleRole.BACKGROUND),
        ]
    )
    assert len(merged) == 1
    assert merged[0].role == CandleRole.BACKGROUND


def test_merge_clusters_keeps_clusters_at_threshold_apart():
    merged = merge_clusters([_cluster((0, 128, 0), 100), _cluster((3, 132, 0), 10)], max_distance=5)
    assert len(merged) == 2
    merged = merge_clusters([_cluster((0, 128, 0), 100), _cluster((3, 131, 0), 10)], max_distance=5)
    assert len(merged) == 1


def test_missing_buffer_gives_empty_profile():
    profile = detect_candle_colors(None)
    assert profile.overall_confidence == 0.0
    assert all(color is None for color in profile.colors.values())
    assert profile.clusters == []


def test_rendered_chart_profile():
    chart = render_chart(generate_test_case("colors", seed=5))
    profile = detect_candle_colors(PixelBuffer.from_bgr(chart.image))

    assert color_distance(profile.color_for(CandleRole.BULLISH_FILL), BULLISH) < 16
    assert color_distance(profile.color_for(CandleRole.BEARISH_FILL), BEARISH) < 16
    assert color_distance(profile.color_for(CandleRole.WICK), WICK) < 16
    assert color_distance(profile.color_for(CandleRole.BACKGROUND), (255, 255, 255)) < 30
    assert profile.overall_confidence > 0.5
    assert profile.method == "hybrid"


def test_profile_is_deterministic():
    buffer = PixelBuffer.from_bgr(render_chart(generate_test_case("colors", seed=9)).image)
    params = KMeansParams(k=4)
    a = detect_candle_colors(buffer, params)
    b = detect_candle_colors(buffer, params)
    assert a.model_dump() == b.model_dump()
