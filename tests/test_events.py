from veilpage.pipeline import EventChannel


def test_subscribers_called_in_order():
    channel = EventChannel()
    calls = []
    channel.subscribe(lambda v: calls.append(("a", v)))
    channel.subscribe(lambda v: calls.append(("b", v)))
    channel.emit(1)
    assert calls == [("a", 1), ("b", 1)]


def test_unsubscribe_during_emit_uses_snapshot():
    channel = EventChannel()
    calls = []
    handles = {}

    def first(v):
        calls.append("first")
        handles["second"]()

    def second(v):
        calls.append("second")

    channel.subscribe(first)
    handles["second"] = channel.subscribe(second)
    channel.emit(0)
    assert calls == ["first", "second"]
    channel.emit(0)
    assert calls == ["first", "second", "first"]
    assert len(channel) == 1
