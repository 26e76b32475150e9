from unittest.mock import patch


def test_cli_main_invokes_uvicorn_run():
    with patch("uvicorn.run") as mock_run:
        # import inside test to ensure patch target is available
        from dialectic.cli import main as cli_main

        cli_main.main([])

    mock_run.assert_called_once()
    assert mock_run.call_args.args[0] == "dialectic.main:app"


def test_cli_worker_command_starts_worker():
    from dialectic.cli import main as cli_main

    with patch.object(cli_main, "worker_main") as mock_worker, patch("uvicorn.run") as mock_run:
        cli_main.main(["worker"])

    mock_worker.assert_called_once_with()
    mock_run.assert_not_called()
