import json

import polyline

from territory_conquest import main as cli

from conftest import gpx_document, make_square, offset


def test_claim_command_prints_result(tmp_path, capsys):
    activity = tmp_path / "loop.gpx"
    activity.write_text(gpx_document(make_square(110.0)), encoding="utf-8")

    code = cli.main(["claim", str(activity), "--user", "alice"])

    assert code == 0
    result = json.loads(capsys.readouterr().out)
    assert result["action"] == "new"
    assert result["points_gained"] == 60


def test_claim_command_reports_rejection(tmp_path, capsys):
    open_path = [offset(0, 0), offset(0, 100), offset(100, 100), offset(100, 0)]
    activity = tmp_path / "open.gpx"
    activity.write_text(gpx_document(open_path), encoding="utf-8")

    code = cli.main(["claim", str(activity), "--user", "alice"])

    assert code == 1
    assert json.loads(capsys.readouterr().out)["code"] == "InvalidPath"


def test_serve_command_builds_app(monkeypatch, tmp_path):
    seed = tmp_path / "seed.json"
    seed.write_text(json.dumps({"profiles": [{"id": "alice"}]}), encoding="utf-8")
    calls = {}

    class FakeApp:
        def run(self, host, port):
            calls["bind"] = (host, port)

    def fake_create_app(service, authenticator):
        calls["profile"] = service.config.store.load_profile("alice")
        return FakeApp()

    monkeypatch.setattr(cli, "create_app", fake_create_app)
    code = cli.main(["serve", "--seed", str(seed), "--host", "127.0.0.1", "--port", "9000"])

    assert code == 0
    assert calls["bind"] == ("127.0.0.1", 9000)
    assert calls["profile"].id == "alice"


def test_claim_command_accepts_encoded_polyline(capsys):
    path = make_square(110.0)
    encoded = polyline.encode([(point.lat, point.lng) for point in path])

    code = cli.main(["claim", "--polyline", encoded, "--duration", "132", "--user", "alice"])

    assert code == 0
    assert json.loads(capsys.readouterr().out)["action"] == "new"


def test_claim_command_polyline_needs_duration(capsys):
    encoded = polyline.encode([(point.lat, point.lng) for point in make_square(110.0)])

    code = cli.main(["claim", "--polyline", encoded, "--user", "alice"])

    assert code == 1
    assert json.loads(capsys.readouterr().out)["code"] == "InvalidDuration"


def test_claim_command_needs_a_source(capsys):
    code = cli.main(["claim", "--user", "alice"])

    assert code == 1
    assert json.loads(capsys.readouterr().out)["code"] == "InvalidPath"
