from mipsmachine.stats import Statistics


def test_fresh_statistics_are_zero():
    stats = Statistics()
    assert stats.total_ticks == 0
    assert stats.idle_ticks == 0
    assert stats.system_ticks == 0
    assert stats.user_ticks == 0
    assert stats.num_disk_reads == 0
    assert stats.num_packets_recvd == 0


def test_summary_of_fresh_statistics():
    lines = Statistics().summary().splitlines()
    assert lines == [
        "Ticks: total 0, idle 0, system 0, user 0",
        "Disk I/O: reads 0, writes 0",
        "Console I/O: reads 0, writes 0",
        "Paging: faults 0",
        "Network I/O: packets received 0, sent 0",
    ]


def test_summary_reflects_counters():
    stats = Statistics(
        total_ticks=7,
        idle_ticks=1,
        system_ticks=2,
        user_ticks=4,
        num_disk_reads=3,
        num_disk_writes=5,
        num_console_chars_read=6,
        num_console_chars_written=8,
        num_page_faults=9,
        num_packets_sent=11,
        num_packets_recvd=12,
    )
    lines = stats.summary().splitlines()
    assert lines[0] == "Ticks: total 7, idle 1, system 2, user 4"
    assert lines[1] == "Disk I/O: reads 3, writes 5"
    assert lines[2] == "Console I/O: reads 6, writes 8"
    assert lines[3] == "Paging: faults 9"
    assert lines[4] == "Network I/O: packets received 12, sent 11"


def test_str_matches_summary():
    stats = Statistics(total_ticks=42)
    assert str(stats) == stats.summary()