"""Executor factory used by the transformer."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from GitlabArtifact.concurrency import create_executor


def test_single_worker_runs_inline():
    assert create_executor(1) == (None, False)
    assert create_executor(0) == (None, False)


def test_thread_pool_for_several_workers():
    executor, needs_shutdown = create_executor(3)
    try:
        assert isinstance(executor, ThreadPoolExecutor)
        assert needs_shutdown is True
        assert executor.submit(lambda: "ran").result() == "ran"
    finally:
        executor.shutdown(wait=True)
