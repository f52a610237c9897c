"""
Test fixtures - in-memory SQLite database, an in-memory Jira served through
httpx.MockTransport, and authenticated HTTP clients
"""
import itertools
import json
import re

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from backend.database import Base, get_db, enable_sqlite_foreign_keys
from backend.main import app
from backend.api.auth import create_user_token
from backend.models.user import User, UserRole
from backend.models.partner import Partner, PartnerStatus, PartnerType, Platform
from backend.services.jira_client import JiraClient, get_jira_client
from backend.services.google_oauth import GoogleOAuthClient, get_google_oauth_client

JIRA_BASE_URL = "https://jira.test"
PROJECT_KEY = "B2B"
TRACKING_LABEL = "b2b-tracker"
JIRA_TIMESTAMP = "2024-01-15T10:30:00.000+0000"

DONE_TRANSITION = {
    "id": "31",
    "name": "Done",
    "to": {"name": "Done", "statusCategory": {"key": "done"}},
}
IN_PROGRESS_TRANSITION = {
    "id": "21",
    "name": "Start Progress",
    "to": {"name": "In Progress", "statusCategory": {"key": "indeterminate"}},
}


def adf(text):
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


class FakeJira:
    """Just enough of Jira Cloud REST v3 to drive JiraClient end to end"""

    def __init__(self, project_key=PROJECT_KEY):
        self.project_key = project_key
        self.issues = {}
        self.comments = {}
        self.requests = []
        self.fail_on = set()
        self.search_page_size = None
        self._issue_seq = itertools.count(1)
        self._comment_seq = itertools.count(10001)

    # -- state helpers used directly by tests --

    def add_issue(self, summary, labels, description=None, status="To Do",
                  priority="Medium", assignee=None, key=None):
        n = next(self._issue_seq)
        key = key or f"{self.project_key}-{n}"
        self.issues[key] = {
            "id": str(10000 + n),
            "key": key,
            "fields": {
                "summary": summary,
                "description": adf(description) if description else None,
                "status": {"name": status},
                "priority": {"name": priority},
                "assignee": {"emailAddress": assignee} if assignee else None,
                "labels": list(labels),
                "created": JIRA_TIMESTAMP,
                "updated": JIRA_TIMESTAMP,
            },
        }
        self.comments.setdefault(key, [])
        return self.issues[key]

    def add_comment(self, key, text, author="Jira User"):
        comment = {
            "id": str(next(self._comment_seq)),
            "author": {
                "displayName": author,
                "emailAddress": "jira.user@thinkhuge.net",
                "avatarUrls": {"48x48": "https://avatar.test/48.png"},
            },
            "body": adf(text),
            "created": JIRA_TIMESTAMP,
            "updated": JIRA_TIMESTAMP,
        }
        self.comments.setdefault(key, []).append(comment)
        return comment

    def calls(self, method, path_pattern):
        return [r for r in self.requests if r[0] == method and re.search(path_pattern, r[1])]

    # -- transport --

    def _fail(self, op):
        return httpx.Response(400, text=json.dumps({"errorMessages": [f"Simulated {op} failure"]}))

    def _issue_or_404(self, key):
        issue = self.issues.get(key)
        if issue is None:
            return None, httpx.Response(404, json={"errorMessages": ["Issue does not exist or you do not have permission to see it."]})
        return issue, None

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/rest/api/3", "", 1)
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        routes = [
            ("POST", r"^/issue$", "create_issue", self._create_issue),
            ("POST", r"^/search/jql$", "search", self._search),
            ("GET", r"^/issue/([^/]+)/transitions$", "get_transitions", self._get_transitions),
            ("POST", r"^/issue/([^/]+)/transitions$", "transition", self._transition),
            ("GET", r"^/issue/([^/]+)/comment$", "get_comments", self._get_comments),
            ("POST", r"^/issue/([^/]+)/comment$", "add_comment", self._add_comment),
            ("PUT", r"^/issue/([^/]+)/comment/([^/]+)$", "update_comment", self._update_comment),
            ("DELETE", r"^/issue/([^/]+)/comment/([^/]+)$", "delete_comment", self._delete_comment),
            ("GET", r"^/issue/([^/]+)$", "get_issue", self._get_issue),
            ("PUT", r"^/issue/([^/]+)$", "update_issue", self._update_issue),
        ]
        for method, pattern, op, handler in routes:
            match = re.match(pattern, path)
            if request.method == method and match:
                if op in self.fail_on:
                    return self._fail(op)
                return handler(request, body, *match.groups())
        return httpx.Response(404, json={"errorMessages": [f"No route for {request.method} {path}"]})

    def _create_issue(self, request, body):
        fields = body["fields"]
        description = fields.get("description")
        issue = self.add_issue(
            summary=fields["summary"],
            labels=fields.get("labels", []),
            priority=fields.get("priority", {}).get("name", "Medium"),
        )
        issue["fields"]["description"] = description
        return httpx.Response(201, json={"id": issue["id"], "key": issue["key"], "self": f"{JIRA_BASE_URL}/rest/api/3/issue/{issue['id']}"})

    def _get_issue(self, request, body, key):
        issue, missing = self._issue_or_404(key)
        return missing or httpx.Response(200, json=issue)

    def _update_issue(self, request, body, key):
        issue, missing = self._issue_or_404(key)
        if missing:
            return missing
        for name, value in body["fields"].items():
            issue["fields"][name] = value
        return httpx.Response(204)

    def _search(self, request, body):
        label = re.search(r'labels = "([^"]+)"', body["jql"]).group(1)
        matching = [i for i in self.issues.values() if label in i["fields"]["labels"]]
        matching.sort(key=lambda i: int(i["id"]), reverse=True)
        size = self.search_page_size or body.get("maxResults", 50)
        start = int(body.get("nextPageToken") or 0)
        page = matching[start:start + size]
        data = {"issues": page, "isLast": start + size >= len(matching)}
        if not data["isLast"]:
            data["nextPageToken"] = str(start + size)
        return httpx.Response(200, json=data)

    def _get_transitions(self, request, body, key):
        _, missing = self._issue_or_404(key)
        return missing or httpx.Response(200, json={"transitions": [IN_PROGRESS_TRANSITION, DONE_TRANSITION]})

    def _transition(self, request, body, key):
        issue, missing = self._issue_or_404(key)
        if missing:
            return missing
        target = {t["id"]: t for t in (IN_PROGRESS_TRANSITION, DONE_TRANSITION)}.get(body["transition"]["id"])
        if target is None:
            return httpx.Response(400, json={"errorMessages": ["Transition id is not valid for this issue."]})
        issue["fields"]["status"] = {"name": target["to"]["name"]}
        return httpx.Response(204)

    def _get_comments(self, request, body, key):
        _, missing = self._issue_or_404(key)
        if missing:
            return missing
        comments = self.comments.get(key, [])
        start = int(request.url.params.get("startAt", 0))
        size = int(request.url.params.get("maxResults", 50))
        return httpx.Response(200, json={
            "comments": comments[start:start + size],
            "startAt": start,
            "maxResults": size,
            "total": len(comments),
        })

    def _add_comment(self, request, body, key):
        comment = self.add_comment(key, "")
        comment["body"] = body["body"]
        return httpx.Response(201, json=comment)

    def _find_comment(self, key, comment_id):
        return next((c for c in self.comments.get(key, []) if c["id"] == comment_id), None)

    def _update_comment(self, request, body, key, comment_id):
        comment = self._find_comment(key, comment_id)
        if comment is None:
            return httpx.Response(404, json={"errorMessages": ["Comment not found"]})
        comment["body"] = body["body"]
        comment["updated"] = "2024-01-16T08:00:00.000+0000"
        return httpx.Response(200, json=comment)

    def _delete_comment(self, request, body, key, comment_id):
        comment = self._find_comment(key, comment_id)
        if comment is None:
            return httpx.Response(404, json={"errorMessages": ["Comment not found"]})
        self.comments[key].remove(comment)
        return httpx.Response(204)


@pytest.fixture()
def fake_jira():
    return FakeJira()


@pytest_asyncio.fixture()
async def jira_client(fake_jira):
    """JiraClient talking to FakeJira over httpx.MockTransport"""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_jira.handle))
    client = JiraClient(
        base_url=JIRA_BASE_URL,
        email="bot@thinkhuge.net",
        api_token="token",
        project_key=PROJECT_KEY,
        label=TRACKING_LABEL,
        http=http,
    )
    yield client
    await http.aclose()


@pytest_asyncio.fixture()
async def db_session():
    """Create a fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """Insert baseline test data: a user and two partners"""
    user = User(
        email="alex@thinkhuge.net",
        name="Alex Tester",
        role=UserRole.USER.value,
        two_factor_enabled=False,
    )
    acme = Partner(
        name="Acme Corp",
        upload_key="A" * 32,
        platform=Platform.WHMCS,
        partner_type=PartnerType.BROKER,
        partner_status=PartnerStatus.LIVE,
    )
    globex = Partner(
        name="Globex",
        upload_key="B" * 32,
        partner_type=PartnerType.AFFILIATE,
        partner_status=PartnerStatus.PRE_SALES,
        commission=15,
    )

    db_session.add_all([user, acme, globex])
    await db_session.commit()
    await db_session.refresh(user)
    await db_session.refresh(acme)
    await db_session.refresh(globex)

    return {"user": user, "acme": acme, "globex": globex}


def _override_db(db_session):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db


def _override_jira(jira_client):
    async def override_get_jira_client():
        yield jira_client

    app.dependency_overrides[get_jira_client] = override_get_jira_client


@pytest_asyncio.fixture()
async def client(db_session, seed_data, jira_client):
    """Authenticated httpx AsyncClient bound to the FastAPI app"""
    _override_db(db_session)
    _override_jira(jira_client)

    token = create_user_token(seed_data["user"])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        ac.headers["Authorization"] = f"Bearer {token}"
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def pending_2fa_client(db_session, seed_data, jira_client):
    """Client for a user with 2FA enabled whose token has not passed the second factor"""
    user = seed_data["user"]
    user.two_factor_secret = "JBSWY3DPEHPK3PXP"
    user.two_factor_enabled = True
    await db_session.commit()

    _override_db(db_session)
    _override_jira(jira_client)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        ac.headers["Authorization"] = f"Bearer {create_user_token(user)}"
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session):
    """Unauthenticated httpx AsyncClient"""
    _override_db(db_session)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()


class FakeGoogle:
    """Stands in for Google's token and userinfo endpoints"""

    def __init__(self):
        self.profile = {"email": "new.person@thinkhuge.net", "name": "New Person", "picture": "https://img.test/p.png"}
        self.reject_code = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            if self.reject_code:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "google-token", "token_type": "Bearer"})
        if request.url.path == "/v1/userinfo":
            return httpx.Response(200, json=self.profile)
        return httpx.Response(404)


@pytest.fixture()
def fake_google():
    return FakeGoogle()


@pytest_asyncio.fixture()
async def oauth_client(db_session, fake_google):
    """Unauthenticated client whose Google OAuth calls hit FakeGoogle"""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_google.handle))
    oauth = GoogleOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://test/api/auth/google/callback",
        http=http,
    )

    async def override_get_google_oauth_client():
        yield oauth

    _override_db(db_session)
    app.dependency_overrides[get_google_oauth_client] = override_get_google_oauth_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()
    await http.aclose()
