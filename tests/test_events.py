from cleancopy.events import DebouncedListener, EventBus
from cleancopy.models import EventKind, PipelineEvent


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_bus_isolates_failing_listener():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    unsubscribe = bus.subscribe(seen.append)
    bus.emit(PipelineEvent(EventKind.FILE_DISCOVERED))
    assert len(seen) == 1

    unsubscribe()
    bus.emit(PipelineEvent(EventKind.FILE_DISCOVERED))
    assert len(seen) == 1


def test_debounce_keeps_latest_and_passes_final_events():
    clock = Clock()
    seen = []
    listener = DebouncedListener(seen.append, interval=1.0, clock=clock)

    first = PipelineEvent(EventKind.FILE_DISCOVERED, progress=0.1)
    listener(first)
    listener(PipelineEvent(EventKind.FILE_DISCOVERED, progress=0.2))
    latest = PipelineEvent(EventKind.VERDICT_RECORDED, progress=0.3)
    listener(latest)
    assert seen == [first]

    listener.flush()
    assert seen == [first, latest]

    done = PipelineEvent(EventKind.SCAN_DONE, final=True)
    listener(done)
    assert seen[-1] is done

    clock.now = 5.0
    later = PipelineEvent(EventKind.COPY_PROGRESS, progress=0.5)
    listener(later)
    assert seen[-1] is later


def test_flush_without_pending_is_noop():
    seen = []
    listener = DebouncedListener(seen.append, interval=1.0, clock=Clock())
    listener.flush()
    assert seen == []
