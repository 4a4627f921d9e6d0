"""LangGraph pipeline for candlestick chart digitization."""

from langgraph.graph import END, StateGraph

from candle_digitizer.models import (
    OcrTokens,
    PipelineConfig,
    PipelineState,
    PixelCoordinate,
    ProcessingStage,
    XLabelOptions,
)
from candle_digitizer.nodes import (
    assign_timestamps,
    calibrate,
    detect_colors,
    extract,
    locate_plot_area,
)


def _has_fatal(state: PipelineState, *stages: ProcessingStage) -> bool:
    return any(err.stage in stages and not err.recoverable for err in state.errors)


def _route_plot_area(state: PipelineState) -> str:
    if _has_fatal(state, ProcessingStage.INPUT, ProcessingStage.PLOT_AREA):
        return END
    if state.plot_area is not None:
        return "calibrate"
    return END


def _route_calibrate(state: PipelineState) -> str:
    if _has_fatal(state, ProcessingStage.CALIBRATE):
        return END
    if state.y_mapping is not None:
        return "colors"
    return END


def _route_colors(state: PipelineState) -> str:
    if _has_fatal(state, ProcessingStage.COLORS):
        return END
    if state.color_profile is not None:
        return "extract"
    return END


def _route_extract(state: PipelineState) -> str:
    if _has_fatal(state, ProcessingStage.EXTRACT):
        return END
    if state.candles:
        return "timestamps"
    return END


def create_pipeline():
    graph = StateGraph(PipelineState)

    graph.add_node("plot_area", locate_plot_area)
    graph.add_node("calibrate", calibrate)
    graph.add_node("colors", detect_colors)
    graph.add_node("extract", extract)
    graph.add_node("timestamps", assign_timestamps)

    graph.set_entry_point("plot_area")

    graph.add_conditional_edges(
        "plot_area", _route_plot_area, {"calibrate": "calibrate", END: END}
    )
    graph.add_conditional_edges("calibrate", _route_calibrate, {"colors": "colors", END: END})
    graph.add_conditional_edges("colors", _route_colors, {"extract": "extract", END: END})
    graph.add_conditional_edges(
        "extract", _route_extract, {"timestamps": "timestamps", END: END}
    )
    graph.add_edge("timestamps", END)

    return graph.compile()


def run_pipeline(
    image_path: str,
    ocr_tokens: OcrTokens,
    timeframe: str,
    config: PipelineConfig | None = None,
    anchor_timestamp: str | None = None,
    manual_corners: tuple[PixelCoordinate, PixelCoordinate, PixelCoordinate] | None = None,
    x_label_options: XLabelOptions | None = None,
    segmentation_mask_path: str | None = None,
) -> PipelineState:
    initial = PipelineState(
        image_path=image_path,
        timeframe=timeframe,
        config=config or PipelineConfig(),
        ocr_tokens=ocr_tokens,
        anchor_timestamp=anchor_timestamp,
        manual_corners=manual_corners,
        x_label_options=x_label_options or XLabelOptions(),
        segmentation_mask_path=segmentation_mask_path,
    )
    result = pipeline.invoke(initial)
    return result if isinstance(result, PipelineState) else PipelineState(**result)


pipeline = create_pipeline()
