from tenement_sync.common.models import Jurisdiction
from tenement_sync.pipeline.progress import ProgressTracker


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_progress_defaults_to_idle():
    progress = ProgressTracker().get(Jurisdiction.WA)
    assert progress.status == "idle"
    assert progress.percent == 0.0


def test_progress_tracks_batches_and_estimates_remaining_time():
    clock = FakeClock()
    tracker = ProgressTracker(clock=clock)

    tracker.start(Jurisdiction.WA, "Fetching")
    clock.now = 110.0
    tracker.advance(Jurisdiction.WA, 500, 2000, "Imported batch 1")

    progress = tracker.get(Jurisdiction.WA)
    assert progress.status == "syncing"
    assert progress.percent == 25.0
    assert progress.estimated_seconds_remaining == 30.0

    tracker.finish(Jurisdiction.WA, "Imported 2000 records")
    done = tracker.get(Jurisdiction.WA)
    assert done.status == "completed"
    assert done.estimated_seconds_remaining is None


def test_progress_snapshot_is_keyed_by_code():
    tracker = ProgressTracker(clock=FakeClock())
    tracker.start(Jurisdiction.NT)
    tracker.finish(Jurisdiction.NT, "Sync failed: boom", failed=True)

    snapshot = tracker.snapshot()
    assert snapshot["NT"]["status"] == "error"
    assert snapshot["NT"]["message"] == "Sync failed: boom"
