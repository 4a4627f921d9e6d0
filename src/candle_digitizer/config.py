# Plot area detection
EDGE_ON_THRESHOLD = 128
MIN_CONTOUR_POINTS = 10
MIN_CONTOUR_AREA = 1000.0
MAX_CONTOUR_AREA_RATIO = 0.8
ASPECT_RATIO_MIN = 0.5
ASPECT_RATIO_MAX = 3.0
CANNY_LOW_THRESHOLD = 50
CANNY_HIGH_THRESHOLD = 150

# Plot area confidence bands: (area-ratio range, score)
PLOT_AREA_BANDS = (((0.1, 0.8), 0.8), ((0.05, 0.9), 0.6))
PLOT_AREA_DEFAULT_SCORE = 0.3
PLOT_AREA_SQUARE_BONUS = 0.1
PLOT_AREA_SQUARE_RANGE = (0.8, 1.25)
PLOT_AREA_FALLBACK_MARGIN = 0.1
PLOT_AREA_FALLBACK_CONFIDENCE = 0.1
MANUAL_CALIBRATION_CONFIDENCE = 1.0

# Y-axis mapping
MIN_Y_LABELS = 2
LOG_SCALE_MIN_LABELS = 3
LOG_SCALE_MIN_LINEAR_CV = 0.05
Y_COUNT_BASE = 0.85
Y_COUNT_STEP = 0.05
Y_GAP_PENALTY = 0.5
Y_GAP_FLOOR = 0.5
LABEL_BOUNDS_MARGIN = 5

# Timestamp assignment (seconds per candle)
TIMEFRAMES: dict[str, int] = {
    "1m": 60,
    "3m": 180,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "6h": 21600,
    "12h": 43200,
    "1d": 86400,
    "1w": 604800,
}
OCR_TIMESTAMP_CONFIDENCE_CAP = 0.9
SINGLE_LABEL_FACTOR = 0.8
SINGLE_LABEL_DECAY_PER_CANDLE = 0.02
SINGLE_LABEL_FLOOR = 0.3
ANCHOR_MISMATCH_FACTOR = 0.9
ESTIMATED_TIMESTAMP_CONFIDENCE = 0.4
MANUAL_X_LABEL_CONFIDENCE = 1.0
FALLBACK_X_LABEL_CONFIDENCE = 0.8

# Candle color detection
KMEANS_K = 6
KMEANS_MAX_ITERATIONS = 50
KMEANS_TOLERANCE = 0.5
KMEANS_SEED = 0
KMEANS_SAMPLE_BIN_SIZE = 4
HISTOGRAM_BIN_SIZE = 16
HISTOGRAM_MIN_FREQUENCY = 0.01
COLOR_BAND_RADIUS = 200.0
CLUSTER_MERGE_DISTANCE = 30.0
MASK_MAX_COLOR_DISTANCE = 60.0

# OHLC extraction
DOJI_MAX_BODY_ROWS = 2
CLEAR_CANDLE_CONFIDENCE = 0.9
BODY_ONLY_CONFIDENCE = 0.75
DOJI_CONFIDENCE = 0.6
WICK_ONLY_CONFIDENCE = 0.35
EMPTY_COLUMN_CONFIDENCE = 0.1
OHLC_ORDER_VIOLATION_FACTOR = 0.5
BODY_ROW_WIDTH_RATIO = 0.5

# Concurrency
DEFAULT_MAX_WORKERS = 4

# Output
MIN_CONFIDENCE_OUTPUT = 0.3
