import pytest

from mentorlink.scripts import inbox as inbox_script


def test_parser_accepts_each_command():
    parser = inbox_script.build_parser()

    args = parser.parse_args(["--viewer-id", "u-1", "inbox", "sent"])
    assert (args.command, args.view, args.viewer_id) == ("inbox", "sent", "u-1")

    args = parser.parse_args(["relationship", "u-2"])
    assert args.counterpart_id == "u-2"

    with pytest.raises(SystemExit):
        parser.parse_args(["inbox", "archived"])


def test_main_configures_logging_and_runs(mocker):
    configure = mocker.patch.object(inbox_script, "configure_logging")
    run = mocker.patch.object(inbox_script, "run", new=mocker.AsyncMock(return_value=0))

    assert inbox_script.main(["--log-level", "debug", "health"]) == 0

    configure.assert_called_once_with("debug")
    run.assert_awaited_once()
