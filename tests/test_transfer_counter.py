"""Tests for the in-flight transfer counter."""

import pytest

from fileserver.transfer_counter import TransferCounter


def test_starts_idle():
    counter = TransferCounter()
    assert counter.active == 0
    assert not counter.busy


def test_acquire_and_release():
    counter = TransferCounter()
    counter.acquire()
    counter.acquire()
    assert counter.active == 2
    assert counter.busy

    counter.release()
    counter.release()
    assert counter.active == 0


def test_release_never_goes_negative():
    counter = TransferCounter()
    assert counter.release() == 0
    assert counter.active == 0


@pytest.mark.asyncio
async def test_track_releases_on_success():
    counter = TransferCounter()

    async with counter.track():
        assert counter.active == 1

    assert counter.active == 0


@pytest.mark.asyncio
async def test_track_releases_on_error():
    counter = TransferCounter()

    with pytest.raises(RuntimeError):
        async with counter.track():
            assert counter.active == 1
            raise RuntimeError("read failed")

    assert counter.active == 0
