import os
import signal
from unittest import mock

import pytest

from mipsmachine import host


def test_write_then_read_round_trip(tmp_path):
    path = tmp_path / "disk"
    fd = host.open_for_write(path)
    try:
        host.write_all(fd, b"hello world")
        assert host.tell(fd) == len(b"hello world")
        assert host.seek(fd, 6) == 6
        assert host.read_exact(fd, 5) == b"world"
    finally:
        host.close(fd)


def test_open_for_write_truncates(tmp_path):
    path = tmp_path / "file"
    path.write_bytes(b"old contents")
    fd = host.open_for_write(path)
    host.close(fd)
    assert path.read_bytes() == b""


def test_read_exact_short_read_raises(tmp_path):
    path = tmp_path / "small"
    path.write_bytes(b"abc")
    fd = host.open_for_read_write(path)
    try:
        with pytest.raises(EOFError):
            host.read_exact(fd, 10)
    finally:
        host.close(fd)


def test_read_partial_returns_available(tmp_path):
    path = tmp_path / "small"
    path.write_bytes(b"abc")
    fd = host.open_for_read_write(path)
    try:
        assert host.read_partial(fd, 10) == b"abc"
        assert host.read_partial(fd, 10) == b""
    finally:
        host.close(fd)


def test_open_for_read_write_missing(tmp_path):
    missing = tmp_path / "missing"
    assert host.open_for_read_write(missing, crash_on_error=False) is None
    with pytest.raises(FileNotFoundError):
        host.open_for_read_write(missing, crash_on_error=True)


def test_seek_relative_to_end(tmp_path):
    path = tmp_path / "f"
    path.write_bytes(b"0123456789")
    fd = host.open_for_read_write(path)
    try:
        assert host.seek(fd, -3, os.SEEK_END) == 7
        assert host.read_exact(fd, 3) == b"789"
    finally:
        host.close(fd)


def test_unlink(tmp_path):
    path = tmp_path / "gone"
    path.write_bytes(b"x")
    assert host.unlink(path) is True
    assert not path.exists()
    assert host.unlink(path) is False


def test_poll_file_on_pipe():
    r, w = os.pipe()
    try:
        assert host.poll_file(r) is False
        os.write(w, b"x")
        assert host.poll_file(r) is True
        assert host.poll_file(r, idle=True) is True
    finally:
        os.close(r)
        os.close(w)


def test_socket_round_trip(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    receiver = host.open_socket()
    sender = host.open_socket()
    try:
        host.assign_name_to_socket("SOCKET_0", receiver)
        host.assign_name_to_socket("SOCKET_1", sender)
        assert host.poll_socket(receiver) is False
        host.send_to_socket(sender, b"12345678", "SOCKET_0")
        assert host.poll_socket(receiver, idle=True) is True
        assert host.read_from_socket(receiver, 8) == b"12345678"
    finally:
        receiver.close()
        sender.close()
        host.deassign_name_to_socket("SOCKET_0")
        host.deassign_name_to_socket("SOCKET_1")
    assert not (tmp_path / "SOCKET_0").exists()
    assert not (tmp_path / "SOCKET_1").exists()


def test_read_from_socket_wrong_size(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    receiver = host.open_socket()
    sender = host.open_socket()
    try:
        host.assign_name_to_socket("SOCKET_0", receiver)
        host.send_to_socket(sender, b"abcd", "SOCKET_0")
        with pytest.raises(EOFError):
            host.read_from_socket(receiver, 8)
    finally:
        receiver.close()
        sender.close()
        host.deassign_name_to_socket("SOCKET_0")


def test_assign_name_replaces_stale_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "SOCKET_5").write_bytes(b"stale")
    sock = host.open_socket()
    try:
        host.assign_name_to_socket("SOCKET_5", sock)
        assert sock.getsockname() == "SOCKET_5"
    finally:
        sock.close()
        host.deassign_name_to_socket("SOCKET_5")


def test_random_is_reproducible_and_bounded():
    host.random_init(5)
    first = [host.random_int() for _ in range(20)]
    host.random_init(5)
    second = [host.random_int() for _ in range(20)]
    assert first == second
    assert all(0 <= value <= host.RANDOM_MAX for value in first)


def test_call_on_user_abort():
    calls = []
    previous = host.call_on_user_abort(lambda: calls.append("abort"))
    try:
        signal.raise_signal(signal.SIGINT)
    finally:
        signal.signal(signal.SIGINT, previous)
    assert calls == ["abort"]


def test_delay_sleeps():
    slept = []
    with mock.patch("time.sleep", side_effect=slept.append):
        result = host.delay(2)
    assert result is None
    assert slept == [2]