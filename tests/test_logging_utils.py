from spotifiling.logging_utils import LogLevel, SyncLogger, UserErrors


def test_sync_logger_quiet_filters_non_errors(capsys):
    logger = SyncLogger(quiet=True, use_color=False)
    logger.info("hello")
    logger.error("boom")

    out = capsys.readouterr().out
    assert "hello" not in out
    assert "boom" in out


def test_sync_logger_verbose_includes_debug(capsys):
    logger = SyncLogger(verbose=True, use_color=False)
    logger.debug("dbg")

    out = capsys.readouterr().out
    assert "dbg" in out


def test_progress_is_recorded_but_only_printed_when_verbose(capsys):
    seen = []
    logger = SyncLogger(use_color=False, on_log=seen.append)
    logger.progress("Loading playlist 1/3: Chill")

    assert capsys.readouterr().out == ""
    assert [e.level for e in logger.get_entries()] == [LogLevel.PROGRESS]
    assert seen[0].message == "Loading playlist 1/3: Chill"

    SyncLogger(verbose=True, use_color=False).progress("Loading playlists...")
    assert "Loading playlists..." in capsys.readouterr().out


def test_format_summary_counts():
    logger = SyncLogger(use_color=False)
    logger.success("a")
    logger.warning("b")
    logger.error("c")

    summary = logger.format_summary()
    assert "completed" in summary
    assert "warnings" in summary
    assert "errors" in summary


def test_format_summary_without_activity():
    assert SyncLogger(use_color=False).format_summary() == "No activity"


def test_user_errors_writes_pending():
    message = UserErrors.writes_pending(1, "API error: 503")
    assert "1 change not yet saved" in message
    assert "Last error: API error: 503" in message

    assert "Wait for 30s" in UserErrors.rate_limited(30.0)
