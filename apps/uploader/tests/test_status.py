import io

from uploader.services.pipeline.status import ConsoleStatusSink, clamp_progress


def test_console_status_sink_prints_prefixed_lines() -> None:
    stream = io.StringIO()
    sink = ConsoleStatusSink(stream=stream)

    sink.set_status("Uploading content...")
    sink.set_progress(0.4)
    sink.set_progress(0.4001)
    sink.set_progress(1.7)

    assert stream.getvalue().splitlines() == [
        "[doc-upload] Uploading content...",
        "[doc-upload] progress=40%",
        "[doc-upload] progress=100%",
    ]


def test_clamp_progress() -> None:
    assert clamp_progress(-0.5) == 0.0
    assert clamp_progress(0.25) == 0.25
    assert clamp_progress(3) == 1.0
