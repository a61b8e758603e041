import pytest

from mipsmachine.console import Console
from mipsmachine.interrupt import Interrupt, IntType
from mipsmachine.stats import CONSOLE_TIME, Statistics


@pytest.fixture
def interrupt():
    return Interrupt(Statistics())


@pytest.fixture
def infile(tmp_path):
    path = tmp_path / "keyboard"
    path.write_bytes(b"hi")
    return path


def test_constructor_schedules_read_poll(interrupt, infile, tmp_path):
    with Console(interrupt, read_file=infile, write_file=tmp_path / "out"):
        pending = interrupt.pending
        assert [p.kind for p in pending] == [IntType.CONSOLE_READ]
        assert pending[0].when == CONSOLE_TIME


def test_put_char_writes_immediately(interrupt, infile, tmp_path):
    out = tmp_path / "out"
    with Console(interrupt, read_file=infile, write_file=out) as console:
        console.put_char("a")
        assert console.busy
    assert out.read_bytes() == b"a"


def test_put_char_while_busy_raises(interrupt, infile, tmp_path):
    with Console(interrupt, read_file=infile, write_file=tmp_path / "out") as console:
        console.put_char("a")
        with pytest.raises(RuntimeError):
            console.put_char("b")


def test_put_char_requires_single_character(interrupt, infile, tmp_path):
    with Console(interrupt, read_file=infile, write_file=tmp_path / "out") as console:
        with pytest.raises(ValueError):
            console.put_char("ab")


def test_write_done_fires_through_interrupts(interrupt, infile, tmp_path):
    done = []
    out = tmp_path / "out"
    with Console(
        interrupt,
        read_file=infile,
        write_file=out,
        write_done=lambda: done.append(True),
    ) as console:
        console.put_char("x")
        interrupt.idle()
        assert done == [True]
        assert not console.busy
        assert interrupt.stats.num_console_chars_written == 1
        console.put_char("y")
    assert out.read_bytes() == b"xy"


def test_read_characters_in_order(interrupt, infile, tmp_path):
    arrived = []
    with Console(
        interrupt,
        read_file=infile,
        write_file=tmp_path / "out",
        read_avail=lambda: arrived.append(True),
    ) as console:
        assert console.get_char() is None
        console.check_char_avail()
        # A buffered character is not overwritten by further polling.
        console.check_char_avail()
        assert console.get_char() == "h"
        assert console.get_char() is None
        console.check_char_avail()
        assert console.get_char() == "i"
        assert len(arrived) == 2
        assert interrupt.stats.num_console_chars_read == 2


def test_each_poll_reschedules(interrupt, infile, tmp_path):
    with Console(interrupt, read_file=infile, write_file=tmp_path / "out") as console:
        console.check_char_avail()
        kinds = [p.kind for p in interrupt.pending]
        assert kinds == [IntType.CONSOLE_READ, IntType.CONSOLE_READ]


def test_read_past_end_of_file_raises(interrupt, tmp_path):
    keyboard = tmp_path / "keyboard"
    keyboard.write_bytes(b"")
    with Console(interrupt, read_file=keyboard, write_file=tmp_path / "out") as console:
        with pytest.raises(EOFError):
            console.check_char_avail()


def test_missing_read_file_raises(interrupt, tmp_path):
    with pytest.raises(FileNotFoundError):
        Console(interrupt, read_file=tmp_path / "absent", write_file=tmp_path / "out")


def test_write_file_is_truncated(interrupt, infile, tmp_path):
    out = tmp_path / "out"
    out.write_bytes(b"old contents")
    with Console(interrupt, read_file=infile, write_file=out) as console:
        console.put_char("z")
    assert out.read_bytes() == b"z"