from autoclone.pipeline.models import STAGE_ORDER, ProgressEvent, Stage
from autoclone.pipeline.progress import (
    PROGRESS_BANDS,
    global_progress,
    local_percent,
    stage_start,
)

ALL_STAGES = [Stage.INIT, *STAGE_ORDER, Stage.COMPLETE]


def test_bands_cover_0_to_100_without_gaps():
    assert PROGRESS_BANDS[Stage.INIT][0] == 0
    assert PROGRESS_BANDS[Stage.COMPLETE] == (100, 100)
    for current, following in zip(ALL_STAGES, ALL_STAGES[1:]):
        start, end = PROGRESS_BANDS[current]
        assert start <= end
        assert end == PROGRESS_BANDS[following][0]


def test_interpolates_into_band():
    assert global_progress(Stage.SCRIPT, 0) == 15
    assert global_progress(Stage.SCRIPT, 50) == 20
    assert global_progress(Stage.SCRIPT, 100) == 25
    assert global_progress(Stage.RENDER, 50) == 81


def test_out_of_range_values_are_clamped():
    assert global_progress(Stage.UPLOAD, 250) == 100
    assert global_progress(Stage.AUDIO, -10) == 25


def test_accepts_stage_value_strings():
    assert global_progress("images", 50) == 63
    assert stage_start("thumbnail") == 68


def test_monotonic_across_whole_run():
    values = []
    for stage in ALL_STAGES:
        values.append(stage_start(stage))
        for local in range(0, 101, 5):
            values.append(global_progress(stage, local))
    assert values == sorted(values)
    assert values[-1] == 100


def test_local_percent_prefers_progress_field():
    event = ProgressEvent(type="progress", progress=40, completed=1, total=10)
    assert local_percent(event) == 40


def test_local_percent_from_completed_total():
    assert local_percent(ProgressEvent(type="progress", completed=3, total=4)) == 75
    assert local_percent(ProgressEvent(type="progress", completed=3, total=0)) is None
    assert local_percent(ProgressEvent(type="progress", message="warming up")) is None


def test_local_percent_ignores_non_numeric_fields():
    event = ProgressEvent(type="progress", progress="n/a", completed=1, total=2)
    assert local_percent(event) == 50
    assert local_percent(ProgressEvent(type="progress", completed="one", total=2)) is None
    assert local_percent(ProgressEvent(type="progress", progress=True)) is None
