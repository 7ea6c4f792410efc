"""
Unit tests for the shared metrics buffer.
"""

import threading

import pytest

from metrics_server.buffer import SharedBuffer, PoisonedLockError


class TestSharedBuffer:
    """Tests for SharedBuffer class."""

    def test_new_buffer_is_empty(self):
        buf = SharedBuffer()

        assert buf.snapshot() == b""
        assert len(buf) == 0
        assert buf.poisoned is False

    def test_update_returns_length(self):
        buf = SharedBuffer()

        assert buf.update([1, 2, 3, 4]) == 4
        assert buf.update(b"") == 0
        assert buf.update(b"up 1\n") == 5

    def test_last_write_wins(self):
        """The old payload is replaced, never merged."""
        buf = SharedBuffer()
        buf.update(b"a much longer first payload")
        buf.update(b"short")

        assert buf.snapshot() == b"short"

    def test_accepts_bytes_like(self):
        buf = SharedBuffer()

        buf.update(bytearray(b"abc"))
        assert buf.snapshot() == b"abc"

        buf.update(memoryview(b"xyz"))
        assert buf.snapshot() == b"xyz"

        buf.update(x for x in (1, 2, 3))
        assert buf.snapshot() == b"\x01\x02\x03"

    def test_snapshot_is_immutable_copy(self):
        """Mutating the caller's object later does not change what is served."""
        buf = SharedBuffer()
        data = bytearray(b"before")
        buf.update(data)

        data[:] = b"after!"

        assert buf.snapshot() == b"before"
        assert isinstance(buf.snapshot(), bytes)

    def test_rejects_str(self):
        buf = SharedBuffer()
        buf.update(b"keep me")

        with pytest.raises(TypeError):
            buf.update("up 1\n")

        assert buf.snapshot() == b"keep me"

    def test_rejects_int(self):
        buf = SharedBuffer()

        with pytest.raises(TypeError):
            buf.update(16)

        assert buf.snapshot() == b""

    def test_rejects_out_of_range_values(self):
        buf = SharedBuffer()

        with pytest.raises(ValueError):
            buf.update([1, 256])

        assert buf.poisoned is False


class TestPoisoning:
    """A failure while the lock is held makes the buffer unusable."""

    def _poison(self, buf: SharedBuffer):
        with pytest.raises(RuntimeError, match="boom"):
            with buf._guard():
                raise RuntimeError("boom")

    def test_exception_inside_guard_poisons(self):
        buf = SharedBuffer()
        buf.update(b"fine")

        self._poison(buf)

        assert buf.poisoned is True
        with pytest.raises(PoisonedLockError):
            buf.snapshot()
        with pytest.raises(PoisonedLockError):
            buf.update(b"again")

    def test_lock_is_released_after_poisoning(self):
        """Later callers get an error, not a deadlock."""
        buf = SharedBuffer()
        self._poison(buf)

        errors = []

        def reader():
            try:
                buf.snapshot()
            except PoisonedLockError as e:
                errors.append(e)

        t = threading.Thread(target=reader)
        t.start()
        t.join(timeout=5.0)

        assert not t.is_alive()
        assert len(errors) == 1

    def test_input_errors_do_not_poison(self):
        buf = SharedBuffer()

        with pytest.raises(TypeError):
            buf.update("text")

        assert buf.poisoned is False
        assert buf.update(b"ok") == 2


class TestConcurrency:

    def test_concurrent_updates_never_mix(self):
        """
        N writers with distinct payloads: every snapshot is exactly one
        of them, in full.
        """
        buf = SharedBuffer()
        payloads = [bytes([i]) * (1000 + i) for i in range(16)]
        valid = set(payloads) | {b""}
        seen = []
        start = threading.Barrier(len(payloads) + 1)

        def writer(payload: bytes):
            start.wait()
            for _ in range(200):
                buf.update(payload)

        def reader():
            start.wait()
            for _ in range(2000):
                seen.append(buf.snapshot())

        threads = [threading.Thread(target=writer, args=(p,)) for p in payloads]
        threads.append(threading.Thread(target=reader))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30.0)

        assert all(s in valid for s in seen)
        assert buf.snapshot() in payloads

    def test_snapshot_after_update_sees_it(self):
        buf = SharedBuffer()
        done = threading.Event()

        def writer():
            buf.update(b"from another thread")
            done.set()

        threading.Thread(target=writer).start()
        assert done.wait(5.0)

        assert buf.snapshot() == b"from another thread"
