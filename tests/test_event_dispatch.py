from birdlink.device.events import (
    EventDispatcher,
    decode_event_line,
    extract_boundary,
    split_frame,
)


def _dispatcher(handlers) -> EventDispatcher:  # type: ignore[no-untyped-def]
    return EventDispatcher(handlers, boundary="--ioboundary", label="Front door")


def test_extract_boundary_from_content_type() -> None:
    assert extract_boundary("multipart/x-mixed-replace; boundary=--ioboundary") == "--ioboundary"
    assert extract_boundary("text/plain") is None
    assert extract_boundary("multipart/x-mixed-replace;boundary=--ioboundary") is None
    assert extract_boundary("") is None


def test_decode_event_line_splits_on_last_colon() -> None:
    assert decode_event_line("doorbell:H") == ("doorbell", "H")
    assert decode_event_line("a:b:c") == ("a:b", "c")
    assert decode_event_line("motionsensor:") == ("motionsensor", "")
    assert decode_event_line("no colon here") is None
    assert decode_event_line(":H") is None


def test_split_frame_uses_crlf() -> None:
    assert split_frame(b"--ioboundary\r\ndoorbell:H\r\n") == ["--ioboundary", "doorbell:H", ""]
    assert split_frame("a\nb") == ["a\nb"]


def test_feed_dispatches_high_events_only() -> None:
    calls: list[str] = []
    dispatcher = _dispatcher(
        {
            "doorbell": lambda: calls.append("doorbell"),
            "motionsensor": lambda: calls.append("motionsensor"),
        }
    )

    dispatched = dispatcher.feed(b"doorbell:H\r\ndoorbell:L\r\nmotionsensor:H\r\n")

    assert dispatched == ["doorbell", "motionsensor"]
    assert calls == ["doorbell", "motionsensor"]
    assert dispatcher.metrics.dispatched_by_name == {"doorbell": 1, "motionsensor": 1}


def test_feed_skips_protocol_noise_silently(log_lines: list[str]) -> None:
    dispatcher = _dispatcher({})

    dispatched = dispatcher.feed(
        b"--ioboundary\r\nContent-Type: text/plain\r\ncontent-type: TEXT/PLAIN\r\n\r\n"
    )

    assert dispatched == []
    assert log_lines == []
    assert dispatcher.metrics.lines_total == 0


def test_feed_logs_unknown_and_unhandled_lines(log_lines: list[str]) -> None:
    calls: list[str] = []
    dispatcher = _dispatcher({"doorbell": lambda: calls.append("doorbell")})

    dispatcher.feed(b"garbage\r\nkeypad:H\r\n")

    assert calls == []
    assert "Front door: Received an unknown response: garbage." in log_lines
    assert "Front door: Unhandled event captured: keypad." in log_lines
    assert dispatcher.metrics.unknown_lines_total == 1
    assert dispatcher.metrics.unhandled_total == 1


def test_feed_keeps_going_after_handler_failure(log_lines: list[str]) -> None:
    calls: list[str] = []

    def _boom() -> None:
        raise RuntimeError("handler down")

    dispatcher = _dispatcher({"doorbell": _boom, "motionsensor": lambda: calls.append("motion")})

    dispatcher.feed("doorbell:H\r\nmotionsensor:H\r\n")

    assert calls == ["motion"]
    assert dispatcher.metrics.handler_errors_total == 1
    assert any("handler for event doorbell failed: handler down" in line for line in log_lines)


def test_feed_reads_handler_table_by_reference() -> None:
    handlers: dict = {}
    calls: list[str] = []
    dispatcher = _dispatcher(handlers)

    dispatcher.feed(b"doorbell:H\r\n")
    handlers["doorbell"] = lambda: calls.append("late")
    dispatcher.feed(b"doorbell:H\r\n")

    assert calls == ["late"]


def test_feed_treats_missing_event_name_as_unknown(log_lines: list[str]) -> None:
    dispatcher = _dispatcher({"": lambda: None})

    assert dispatcher.feed(b":H\r\n") == []
    assert log_lines == ["Front door: Received an unknown response: :H."]
    assert dispatcher.metrics.unknown_lines_total == 1
    assert dispatcher.metrics.unhandled_total == 0
