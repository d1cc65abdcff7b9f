"""Tests for the Bitbucket provider, Cloud and Server variants."""

import pytest

from docshub.errors import ProviderConfigError
from docshub.models.review import SubmitReviewPayload
from docshub.review.base import epoch_ms_to_iso
from docshub.review.bitbucket import BitbucketReviewProvider

SERVER_ORIGIN = "https://bitbucket.acme.io"
SERVER_PR = "/rest/api/1.0/projects/DOC/repos/handbook/pull-requests"
CLOUD_PR = "/2.0/repositories/acme/handbook/pullrequests"


def server_pr_json(id=11, head="feature", base="main"):
    return {
        "id": id,
        "title": "Docs",
        "state": "OPEN",
        "fromRef": {"id": f"refs/heads/{head}", "displayId": head},
        "toRef": {"id": f"refs/heads/{base}", "displayId": base},
        "links": {"self": [{"href": f"{SERVER_ORIGIN}/projects/DOC/repos/handbook/pull-requests/{id}"}]},
    }


def cloud_pr_json(id=21, head="feature", base="main"):
    return {
        "id": id,
        "title": "Docs",
        "state": "OPEN",
        "source": {"branch": {"name": head}},
        "destination": {"branch": {"name": base}},
        "links": {"html": {"href": f"https://bitbucket.org/acme/handbook/pull-requests/{id}"}},
    }


def server_comment(id, name, text, created_ms, anchor=None):
    data = {"id": id, "text": text, "author": {"name": name, "slug": name}, "createdDate": created_ms}
    if anchor:
        data["anchor"] = anchor
    return data


@pytest.fixture
def server(platform):
    return BitbucketReviewProvider(
        "tok", SERVER_ORIGIN, user_name="alice", login="alice", variant="server", transport=platform.transport
    )


@pytest.fixture
def cloud(platform):
    return BitbucketReviewProvider("tok", user_name="alice", login="alice", transport=platform.transport)


class TestConstruction:

    def test_server_without_origin_fails_before_any_call(self):
        with pytest.raises(ProviderConfigError):
            BitbucketReviewProvider("tok", None, variant="server")

    def test_repo_prefix_per_variant(self):
        server = BitbucketReviewProvider("tok", SERVER_ORIGIN, variant="server")
        cloud = BitbucketReviewProvider("tok", variant="cloud")

        assert server.repo_prefix("P/r") == "/projects/P/repos/r"
        assert cloud.repo_prefix("w/r") == "/repositories/w/r"

    def test_base_urls(self):
        assert BitbucketReviewProvider("tok", SERVER_ORIGIN + "/", variant="server").base_url == (
            "https://bitbucket.acme.io/rest/api/1.0"
        )
        assert BitbucketReviewProvider("tok").base_url == "https://api.bitbucket.org/2.0"

    def test_server_repo_needs_project_and_slug(self):
        server = BitbucketReviewProvider("tok", SERVER_ORIGIN, variant="server")

        with pytest.raises(ProviderConfigError):
            server.repo_prefix("handbook")


class TestCloud:

    @pytest.mark.asyncio
    async def test_find_pr_uses_query_language(self, platform, cloud):
        platform.add("GET", CLOUD_PR, {"values": [cloud_pr_json()]})

        pr = await cloud.find_pr("acme/handbook", "feature")

        assert pr.number == 21 and pr.id == 21
        assert pr.head == "feature"
        assert pr.url.endswith("/pull-requests/21")
        assert platform.requests[0].url.params["q"] == 'source.branch.name="feature" AND state="OPEN"'

    @pytest.mark.asyncio
    async def test_find_pr_none(self, platform, cloud):
        platform.add("GET", CLOUD_PR, {"values": []})

        assert await cloud.find_pr("acme/handbook", "feature") is None

    @pytest.mark.asyncio
    async def test_list_comments_sorted_with_inline(self, platform, cloud):
        platform.add("GET", f"{CLOUD_PR}/21/comments", {"values": [
            {
                "id": 2, "user": {"nickname": "bob"}, "content": {"raw": "inline"},
                "created_on": "2024-05-01T11:00:00.000000+00:00",
                "inline": {"path": "docs/a.md", "to": 6},
            },
            {
                "id": 1, "user": {"nickname": "alice"}, "content": {"raw": "global"},
                "created_on": "2024-05-01T10:00:00.000000+00:00",
            },
            {
                "id": 3, "user": {"nickname": "bob"}, "content": {"raw": ""}, "deleted": True,
                "created_on": "2024-05-01T09:00:00.000000+00:00",
            },
        ]})

        comments = await cloud.list_comments("acme/handbook", 21)

        assert [c.id for c in comments] == [1, 2]
        assert comments[0].is_own is True
        assert comments[1].path == "docs/a.md" and comments[1].line == 6

    @pytest.mark.asyncio
    async def test_list_comments_follows_next(self, platform, cloud):
        def cloud_comment(id, created_on):
            return {"id": id, "user": {"nickname": "bob"}, "content": {"raw": "x"}, "created_on": created_on}

        page_two = f"{CLOUD_PR}/21/comments?page=2&pagelen=100"
        platform.add("GET", f"{CLOUD_PR}/21/comments", {
            "values": [cloud_comment(1, "2024-05-01T10:00:00+00:00")],
            "next": f"https://api.bitbucket.org{page_two}",
        })
        platform.add("GET", page_two, {"values": [cloud_comment(2, "2024-05-01T11:00:00+00:00")]})

        comments = await cloud.list_comments("acme/handbook", 21)

        assert [c.id for c in comments] == [1, 2]

    @pytest.mark.asyncio
    async def test_inline_comment_payload(self, platform, cloud):
        platform.add("POST", f"{CLOUD_PR}/21/comments", {
            "id": 5, "user": {"nickname": "alice"}, "content": {"raw": "**[alice]:** hi"},
            "created_on": "2024-05-01T10:00:00+00:00", "inline": {"path": "docs/a.md", "to": 3},
        }, status=201)

        comment = await cloud.add_inline_comment("acme/handbook", 21, "docs/a.md", 3, "hi")

        assert platform.sent_json("POST", f"{CLOUD_PR}/21/comments") == {
            "content": {"raw": "**[alice]:** hi"},
            "inline": {"path": "docs/a.md", "to": 3},
        }
        assert comment.line == 3 and comment.is_own is True

    @pytest.mark.asyncio
    async def test_request_changes_endpoint(self, platform, cloud):
        platform.add("POST", f"{CLOUD_PR}/21/request-changes", {})

        await cloud.submit_review("acme/handbook", 21, SubmitReviewPayload(action="request_changes"))

        assert len(platform.calls("POST", f"{CLOUD_PR}/21/request-changes")) == 1

    @pytest.mark.asyncio
    async def test_create_pr_field_names(self, platform, cloud):
        platform.add("POST", CLOUD_PR, cloud_pr_json(id=30), status=201)

        pr = await cloud.create_pr("acme/handbook", "feature", "main")

        assert platform.sent_json("POST", CLOUD_PR) == {
            "title": "Documentation review: feature",
            "source": {"branch": {"name": "feature"}},
            "destination": {"branch": {"name": "main"}},
        }
        assert pr.head == "feature" and pr.base == "main"


class TestServer:

    @pytest.mark.asyncio
    async def test_find_pr_filters_by_source_ref(self, platform, server):
        platform.add("GET", SERVER_PR, {"values": [
            server_pr_json(id=10, head="other"),
            server_pr_json(id=11, head="feature"),
        ]})

        pr = await server.find_pr("DOC/handbook", "feature")

        assert pr.number == 11
        assert pr.head == "feature"
        params = platform.requests[0].url.params
        assert params["at"] == "refs/heads/feature"
        assert params["state"] == "OPEN"

    @pytest.mark.asyncio
    async def test_list_comments_includes_replies_from_activity_stream(self, platform, server):
        global_root = server_comment(1, "alice", "global", 1714550000000)
        global_reply = server_comment(2, "bob", "reply", 1714551000000)
        global_root["comments"] = [global_reply]
        inline_root = server_comment(3, "bob", "inline", 1714552000000,
                                     anchor={"path": "docs/a.md", "line": 2})
        inline_root["comments"] = [server_comment(4, "alice", "inline reply", 1714553000000)]
        platform.add("GET", f"{SERVER_PR}/11/activities", {"isLastPage": True, "values": [
            {"action": "COMMENTED", "commentAction": "REPLIED", "comment": global_reply},
            {"action": "COMMENTED", "commentAction": "ADDED",
             "commentAnchor": {"path": "docs/a.md", "line": 2}, "comment": inline_root},
            {"action": "COMMENTED", "commentAction": "ADDED", "comment": global_root},
            {"action": "APPROVED"},
        ]})

        comments = await server.list_comments("DOC/handbook", 11)

        assert [c.id for c in comments] == [1, 2, 3, 4]
        assert comments[1].path is None
        assert comments[2].path == "docs/a.md" and comments[2].line == 2
        assert comments[3].path == "docs/a.md" and comments[3].line == 2
        assert comments[0].created_at == epoch_ms_to_iso(1714550000000)
        assert [c.is_own for c in comments] == [True, False, False, True]

    @pytest.mark.asyncio
    async def test_deleted_comments_are_skipped(self, platform, server):
        platform.add("GET", f"{SERVER_PR}/11/activities", {"isLastPage": True, "values": [
            {"action": "COMMENTED", "commentAction": "DELETED",
             "comment": server_comment(5, "bob", "", 1714552000000)},
            {"action": "COMMENTED", "commentAction": "ADDED",
             "comment": server_comment(5, "bob", "oops", 1714552000000)},
            {"action": "COMMENTED", "commentAction": "ADDED",
             "comment": server_comment(6, "bob", "kept", 1714551000000)},
        ]})

        comments = await server.list_comments("DOC/handbook", 11)

        assert [c.id for c in comments] == [6]

    @pytest.mark.asyncio
    async def test_activities_are_paged(self, platform, server):
        platform.add("GET", f"{SERVER_PR}/11/activities", {
            "isLastPage": False, "nextPageStart": 100, "values": [
                {"action": "COMMENTED", "comment": server_comment(1, "bob", "a", 1714550000000)},
            ],
        })
        platform.add("GET", f"{SERVER_PR}/11/activities?limit=100&start=100", {
            "isLastPage": True, "values": [
                {"action": "COMMENTED", "comment": server_comment(2, "bob", "b", 1714551000000)},
            ],
        })

        comments = await server.list_comments("DOC/handbook", 11)

        assert [c.id for c in comments] == [1, 2]

    @pytest.mark.asyncio
    async def test_add_comment_uses_text_field(self, platform, server):
        platform.add("POST", f"{SERVER_PR}/11/comments",
                     server_comment(7, "alice", "**[alice]:** ok", 1714557600000), status=201)

        comment = await server.add_comment("DOC/handbook", 11, "ok")

        assert platform.sent_json("POST", f"{SERVER_PR}/11/comments") == {"text": "**[alice]:** ok"}
        assert comment.created_at.startswith("2024-05-01T")
        assert comment.is_own is True

    @pytest.mark.asyncio
    async def test_inline_comment_anchor(self, platform, server):
        platform.add("POST", f"{SERVER_PR}/11/comments",
                     server_comment(8, "alice", "x", 1714557600000), status=201)

        comment = await server.add_inline_comment("DOC/handbook", 11, "docs/a.md", 4, "x")

        sent = platform.sent_json("POST", f"{SERVER_PR}/11/comments")
        assert sent["anchor"] == {"path": "docs/a.md", "line": 4, "lineType": "ADDED", "fileType": "TO"}
        assert comment.path == "docs/a.md" and comment.line == 4

    @pytest.mark.asyncio
    async def test_request_changes_sets_needs_work(self, platform, server):
        platform.add("PUT", f"{SERVER_PR}/11/participants/alice", {"status": "NEEDS_WORK"})

        await server.submit_review("DOC/handbook", 11, SubmitReviewPayload(action="request_changes"))

        sent = platform.sent_json("PUT", f"{SERVER_PR}/11/participants/alice")
        assert sent["status"] == "NEEDS_WORK"
        assert sent["user"] == {"name": "alice"}

    @pytest.mark.asyncio
    async def test_request_changes_uses_account_login_not_display_name(self, platform):
        server = BitbucketReviewProvider(
            "tok", SERVER_ORIGIN, user_name="Alice Example", variant="server", transport=platform.transport
        )
        platform.add("GET", "/rest/api/1.0/application-properties", {"version": "8.9.0"},
                     headers={"X-AUSERNAME": "alice"})
        platform.add("PUT", f"{SERVER_PR}/11/participants/alice", {"status": "NEEDS_WORK"})

        await server.submit_review("DOC/handbook", 11, SubmitReviewPayload(action="request_changes"))

        assert platform.sent_json("PUT", f"{SERVER_PR}/11/participants/alice")["user"] == {"name": "alice"}

    @pytest.mark.asyncio
    async def test_request_changes_without_known_account_fails_fast(self, platform):
        server = BitbucketReviewProvider("tok", SERVER_ORIGIN, variant="server", transport=platform.transport)

        with pytest.raises(ProviderConfigError):
            await server.submit_review(
                "DOC/handbook", 11, SubmitReviewPayload(action="request_changes", body="fix")
            )
        assert [r.method for r in platform.requests] == ["GET"]

    @pytest.mark.asyncio
    async def test_approve(self, platform, server):
        platform.add("POST", f"{SERVER_PR}/11/approve", {"approved": True})

        await server.submit_review("DOC/handbook", 11, SubmitReviewPayload(action="approve"))

        assert len(platform.calls("POST", f"{SERVER_PR}/11/approve")) == 1

    @pytest.mark.asyncio
    async def test_create_pr_refs(self, platform, server):
        platform.add("POST", SERVER_PR, server_pr_json(id=12), status=201)

        pr = await server.create_pr("DOC/handbook", "feature", "main", title="Docs")

        sent = platform.sent_json("POST", SERVER_PR)
        assert sent["fromRef"]["id"] == "refs/heads/feature"
        assert sent["toRef"]["id"] == "refs/heads/main"
        assert sent["fromRef"]["repository"] == {"slug": "handbook", "project": {"key": "DOC"}}
        assert pr.number == 12 and pr.head == "feature"
