"""
Public approved-stories feed and page routes.

Run with: pytest tests/test_public_feed.py -v
"""

import pytest

pytestmark = pytest.mark.medium

FEED_URL = "/api/approved-submissions"


class TestApprovedFeed:
    def test_only_approved_recordings_listed(self, client, make_submission):
        featured = make_submission(first_name="Grace", status="approved", audio_filename="1700000000000_ab12cd34.webm")
        make_submission(status="approved")
        make_submission(status="pending", audio_filename="1700000000001_ab12cd35.webm")
        make_submission(status="rejected", audio_filename="1700000000002_ab12cd36.webm")

        response = client.get(FEED_URL)

        assert response.status_code == 200
        body = response.json()
        assert [s["id"] for s in body["submissions"]] == [featured]
        assert body["pagination"]["totalSubmissions"] == 1

        story = body["submissions"][0]
        assert story["firstName"] == "Grace"
        assert story["lastName"] == "Lovelace"
        assert story["audioFilename"] == "1700000000000_ab12cd34.webm"
        assert story["audioDuration"] == 42
        assert story["audioSize"] == 2048
        assert story["textStory"] == "My story"

    def test_no_private_fields(self, client, make_submission):
        make_submission(status="approved", audio_filename="1700000000000_ab12cd34.webm")

        story = client.get(FEED_URL).json()["submissions"][0]

        for key in ("email", "zipCode", "personalInfo", "tracking", "consent", "adminNotes", "reviewedBy"):
            assert key not in story

    def test_newest_first_and_paginated(self, client, make_submission):
        ids = [
            make_submission(status="approved", audio_filename=f"1700000000000_0000000{i}.webm")
            for i in range(3)
        ]

        first = client.get(FEED_URL, params={"limit": 2}).json()
        second = client.get(FEED_URL, params={"limit": 2, "page": 2}).json()

        assert [s["id"] for s in first["submissions"]] == [ids[2], ids[1]]
        assert [s["id"] for s in second["submissions"]] == [ids[0]]
        assert first["pagination"]["totalPages"] == 2
        assert first["pagination"]["hasNextPage"] is True

    def test_empty_feed(self, client):
        body = client.get(FEED_URL).json()
        assert body["submissions"] == []
        assert body["pagination"]["totalPages"] == 0

    def test_no_auth_required(self, client):
        assert client.get(FEED_URL).status_code == 200


class TestPages:
    @pytest.mark.parametrize("path", ["/", "/submit", "/admin/login", "/admin/setup", "/admin/dashboard"])
    def test_pages_served(self, client, path):
        response = client.get(path)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")

    def test_health(self, client, make_submission):
        make_submission()
        body = client.get("/api/health").json()
        assert body["backend"] == "running"
        assert body["database"] == "connected"
        assert "submissions" in body["collections"]
