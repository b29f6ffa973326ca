"""
Dev server tests

Static files, reload client injection, CSP header and the reload websocket.
"""

import pytest
from fastapi.testclient import TestClient

from assetflow_engine.devserver import ReloadHub, create_app
from assetflow_engine.devserver.app import CLIENT_TAG, inject_client, resolve_static


@pytest.fixture
def site(write_file, project):
    write_file("app/index.html", "<html><body><h1>Home</h1></body></html>")
    write_file("app/about/index.html", "<p>About</p>")
    write_file("app/css/style.min.css", "a{color:red}")
    write_file("secret.txt", "do not serve")
    return project / "app"


@pytest.fixture
def hub():
    return ReloadHub()


@pytest.fixture
def client(site, hub):
    """Create test client."""
    with TestClient(create_app(site, hub, port=3000)) as test_client:
        yield test_client


class TestStatic:
    def test_index_has_reload_client(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == f"<html><body><h1>Home</h1>{CLIENT_TAG}</body></html>"

    def test_directory_index(self, client):
        response = client.get("/about/")

        assert response.status_code == 200
        assert response.text.endswith(CLIENT_TAG)

    def test_other_files_are_served_unchanged(self, client):
        response = client.get("/css/style.min.css")

        assert response.status_code == 200
        assert response.text == "a{color:red}"
        assert response.headers["content-type"].startswith("text/css")

    def test_missing_file(self, client):
        assert client.get("/nope.html").status_code == 404

    def test_content_security_policy(self, client):
        csp = client.get("/").headers["content-security-policy"]

        assert "default-src 'self'" in csp
        assert "ws://localhost:3000" in csp
        assert client.get("/nope.html").headers["content-security-policy"] == csp

    def test_client_script(self, client):
        response = client.get("/__livereload.js")

        assert response.status_code == 200
        assert "/__livereload" in response.text
        assert "location.reload()" in response.text


def test_resolve_static_rejects_traversal(site):
    assert resolve_static(site, "../secret.txt") is None
    assert resolve_static(site, "/css/../../secret.txt") is None
    assert resolve_static(site, "css/style.min.css") == (site / "css/style.min.css").resolve()


def test_inject_without_body_appends():
    assert inject_client("<p>fragment</p>") == "<p>fragment</p>" + CLIENT_TAG


class TestLiveReload:
    def test_websocket_receives_broadcasts(self, client, hub):
        with client.websocket_connect("/__livereload") as websocket:
            assert websocket.receive_json() == {"type": "hello"}
            assert hub.client_count == 1

            response = client.post("/__livereload/reload")
            assert response.json() == {"delivered": 1}
            assert websocket.receive_json() == {"type": "reload"}

    def test_reload_without_clients(self, client):
        assert client.post("/__livereload/reload").json() == {"delivered": 0}
