"""Process table resilience while processes exit mid-scan.

Processes that vanish between the listing and the attribute reads must be
skipped, never surfaced as NoSuchProcess or ZombieProcess.
"""

import multiprocessing
import random
import threading
import time

from serverstats.models import ProcessSnapshot
from serverstats.monitor import SortKey, collect_processes, top_processes


def dummy_worker(duration: float = 30.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


class TestProcessChurn:
    """Process listing under churn."""

    def test_collect_survives_process_termination(self):
        """
        Test collect_processes() while another thread terminates children.

        Every scan must return a list of ProcessSnapshot objects.
        """
        processes = [multiprocessing.Process(target=dummy_worker) for _ in range(30)]
        for p in processes:
            p.start()

        def killer() -> None:
            for p in random.sample(processes, len(processes)):
                if p.is_alive():
                    p.terminate()
                time.sleep(0.02)

        thread = threading.Thread(target=killer, daemon=True, name="ProcessKiller")
        scans = 0
        try:
            thread.start()
            while thread.is_alive() or scans < 3:
                snapshot = collect_processes()
                assert all(isinstance(proc, ProcessSnapshot) for proc in snapshot)
                top_processes(snapshot, SortKey.CPU)
                top_processes(snapshot, SortKey.MEM)
                scans += 1
        finally:
            thread.join(timeout=5.0)
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=1.0)

        assert scans >= 3

    def test_terminated_children_are_not_listed(self):
        """Test reaped children no longer appear in the snapshot."""
        p = multiprocessing.Process(target=dummy_worker)
        p.start()
        pid = p.pid
        p.terminate()
        p.join(timeout=5.0)

        assert pid not in {proc.pid for proc in collect_processes()}
