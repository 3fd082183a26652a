"""Tests for the dnsd command line."""

import json

import pytest

from dnsd import cli


class TestCli:
    def test_path_prints_skydns_key(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["path", "leader.service.docker"])

        assert excinfo.value.code == 0
        assert capsys.readouterr().out.strip() == "/skydns/docker/service/leader"

    def test_update_sends_topology(self, monkeypatch, capsys):
        calls = []

        def fake_request(**kwargs):
            calls.append(kwargs)
            return "OK\n"

        monkeypatch.setattr(cli, "_api_request", fake_request)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(
                [
                    "--api-url",
                    "http://dnsd:8080",
                    "update",
                    "--master",
                    "leader.service.docker",
                    "--slave",
                    "a.service.docker",
                    "--slave",
                    "b.service.docker",
                ]
            )

        assert excinfo.value.code == 0
        assert calls == [
            {
                "base_url": "http://dnsd:8080",
                "path": "/dns",
                "method": "PUT",
                "json_body": {
                    "master": {"address": "leader.service.docker"},
                    "slaves": [{"address": "a.service.docker"}, {"address": "b.service.docker"}],
                },
            }
        ]
        assert capsys.readouterr().out.strip() == "OK"

    def test_records_pretty_prints(self, monkeypatch, capsys):
        payload = {"domain": "docker", "refreshing": True, "records": []}
        monkeypatch.setattr(cli, "_api_request", lambda **kwargs: json.dumps(payload))

        with pytest.raises(SystemExit):
            cli.main(["records"])

        assert json.loads(capsys.readouterr().out) == payload

    def test_errors_exit_non_zero(self, monkeypatch, capsys):
        def failing_request(**kwargs):
            raise RuntimeError("HTTP 400: ResolutionFailure: unable to resolve x")

        monkeypatch.setattr(cli, "_api_request", failing_request)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["update", "--master", "x"])

        assert excinfo.value.code == 1
        assert "ResolutionFailure" in capsys.readouterr().err

    def test_master_only_update_uses_default_api_url(self, monkeypatch, capsys):
        calls = []

        def fake_request(**kwargs):
            calls.append(kwargs)
            return "OK\n"

        monkeypatch.setattr(cli, "_api_request", fake_request)

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["update", "--master", "leader.service.docker"])

        assert excinfo.value.code == 0
        assert calls[0]["base_url"] == "http://127.0.0.1:8080"
        assert calls[0]["json_body"] == {"master": {"address": "leader.service.docker"}, "slaves": []}

    def test_api_url_is_a_global_option(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["records", "--api-url", "http://dnsd:8080"])

        assert excinfo.value.code == 2
