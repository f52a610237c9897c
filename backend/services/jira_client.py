"""
Jira Cloud REST API v3 client.

Stateless protocol adapter: basic auth over HTTPS, JSON in and out, rich text
in Atlassian Document Format (ADF). Any non-2xx response raises JiraError with
the raw response body attached. Nothing is retried.
"""
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from backend.config import Settings, get_settings
from backend.services.task_metadata import build_description_with_header, build_task_labels
from backend.utils.logger import get_logger

logger = get_logger(__name__)

SEARCH_FIELDS = ["summary", "description", "status", "priority", "assignee", "created", "updated", "labels"]
SEARCH_PAGE_SIZE = 100
COMMENT_PAGE_SIZE = 100


class JiraError(Exception):
    """A Jira call failed; ``payload`` holds the raw upstream response text"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: str = ""):
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"{message}: {payload}" if payload else message)


# ──────────────────────────────────────────────────────
#  ADF helpers
# ──────────────────────────────────────────────────────

def text_to_adf(text: str) -> Dict[str, Any]:
    """Wrap plain text in a single-paragraph ADF document"""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


def adf_to_text(doc: Optional[Dict[str, Any]]) -> str:
    """Flatten an ADF document: text runs joined per block, blocks joined by newlines"""
    if not doc or not doc.get("content"):
        return ""
    blocks = []
    for block in doc["content"]:
        runs = block.get("content") or []
        text = "".join(item.get("text") or "" for item in runs)
        if text:
            blocks.append(text)
    return "\n".join(blocks)


def issue_browse_url(base_url: Optional[str], issue_key: str) -> Optional[str]:
    """Link to the issue in the Jira UI, or None when Jira is not configured"""
    if not base_url:
        return None
    return f"{base_url.rstrip('/')}/browse/{issue_key}"


# ──────────────────────────────────────────────────────
#  Client
# ──────────────────────────────────────────────────────

class JiraClient:
    """Thin async wrapper around the Jira issue, transition and comment endpoints"""

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        project_key: str,
        label: str,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.project_key = project_key
        self.label = label
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._auth = httpx.BasicAuth(email, api_token)

    @classmethod
    def from_settings(cls, settings: Settings, http: Optional[httpx.AsyncClient] = None) -> "JiraClient":
        return cls(
            base_url=settings.JIRA_BASE_URL,
            email=settings.JIRA_EMAIL,
            api_token=settings.JIRA_API_TOKEN,
            project_key=settings.JIRA_PROJECT_KEY,
            label=settings.JIRA_LABEL,
            http=http,
            timeout=settings.JIRA_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "JiraClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        error_message: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Optional[dict]:
        url = f"{self.base_url}/rest/api/3{path}"
        try:
            response = await self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(),
                auth=self._auth,
            )
        except httpx.HTTPError as e:
            logger.error(f"{error_message}: {e}")
            raise JiraError(error_message, payload=str(e)) from e

        if not response.is_success:
            logger.error(f"{error_message} ({response.status_code}): {response.text}")
            raise JiraError(error_message, status_code=response.status_code, payload=response.text)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ── issues ────────────────────────────────────────

    async def create_issue(
        self,
        summary: str,
        description: Optional[str] = None,
        priority: str = "Medium",
        partner_name: Optional[str] = None,
        task_type: Optional[str] = None,
    ) -> dict:
        """Create a labelled Task issue and return the full issue as Jira now sees it"""
        enhanced_description = build_description_with_header(description, partner_name, task_type)
        labels = build_task_labels(self.label, partner_name, task_type)

        fields: Dict[str, Any] = {
            "project": {"key": self.project_key},
            "summary": summary,
            "issuetype": {"name": "Task"},
            "priority": {"name": priority},
            "labels": labels,
        }
        if enhanced_description:
            fields["description"] = text_to_adf(enhanced_description)

        created = await self._request(
            "POST", "/issue", "Failed to create Jira issue", json={"fields": fields}
        )
        logger.info(f"Created Jira issue {created['key']} with labels {labels}")

        # Create responses only carry id/key/self
        return await self.get_issue(created["key"])

    async def get_issue(self, issue_key: str) -> dict:
        return await self._request("GET", f"/issue/{issue_key}", "Failed to fetch Jira issue")

    async def update_issue(
        self,
        issue_key: str,
        labels: Optional[List[str]] = None,
        description: Union[str, Dict[str, Any], None] = None,
    ) -> None:
        """Description may be plain text or a ready ADF document; an empty value clears it"""
        fields: Dict[str, Any] = {}
        if labels is not None:
            fields["labels"] = labels
        if isinstance(description, dict):
            fields["description"] = description
        elif description is not None:
            fields["description"] = text_to_adf(description) if description else None
        if not fields:
            return
        await self._request(
            "PUT", f"/issue/{issue_key}", "Failed to update Jira issue", json={"fields": fields}
        )

    async def iter_tracked_issues(self) -> AsyncIterator[dict]:
        """Yield every issue in the project carrying the tracking label, newest first"""
        jql = f'project = {self.project_key} AND labels = "{self.label}" ORDER BY created DESC'
        next_page_token = None
        while True:
            body: Dict[str, Any] = {
                "jql": jql,
                "fields": SEARCH_FIELDS,
                "maxResults": SEARCH_PAGE_SIZE,
            }
            if next_page_token:
                body["nextPageToken"] = next_page_token
            data = await self._request(
                "POST", "/search/jql", "Failed to search Jira issues", json=body
            ) or {}
            for issue in data.get("issues") or []:
                yield issue
            next_page_token = data.get("nextPageToken")
            if not next_page_token or data.get("isLast", False):
                break

    async def search_tracked_issues(self) -> List[dict]:
        return [issue async for issue in self.iter_tracked_issues()]

    # ── transitions ───────────────────────────────────

    async def get_transitions(self, issue_key: str) -> List[dict]:
        data = await self._request(
            "GET", f"/issue/{issue_key}/transitions", "Failed to get transitions"
        ) or {}
        return data.get("transitions") or []

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        await self._request(
            "POST",
            f"/issue/{issue_key}/transitions",
            "Failed to transition issue",
            json={"transition": {"id": str(transition_id)}},
        )
        logger.info(f"Transitioned {issue_key} via transition {transition_id}")

    # ── comments ──────────────────────────────────────

    async def get_comments(self, issue_key: str) -> List[dict]:
        comments: List[dict] = []
        start_at = 0
        while True:
            data = await self._request(
                "GET",
                f"/issue/{issue_key}/comment",
                "Failed to fetch comments",
                params={"orderBy": "created", "startAt": start_at, "maxResults": COMMENT_PAGE_SIZE},
            ) or {}
            page = data.get("comments") or []
            comments.extend(page)
            total = data.get("total", len(comments))
            if not page or len(comments) >= total:
                return comments
            start_at = len(comments)

    async def add_comment(self, issue_key: str, body: str) -> dict:
        return await self._request(
            "POST",
            f"/issue/{issue_key}/comment",
            "Failed to add comment",
            json={"body": text_to_adf(body)},
        )

    async def update_comment(self, issue_key: str, comment_id: str, body: str) -> dict:
        return await self._request(
            "PUT",
            f"/issue/{issue_key}/comment/{comment_id}",
            "Failed to update comment",
            json={"body": text_to_adf(body)},
        )

    async def delete_comment(self, issue_key: str, comment_id: str) -> None:
        await self._request(
            "DELETE",
            f"/issue/{issue_key}/comment/{comment_id}",
            "Failed to delete comment",
        )


async def get_jira_client() -> AsyncIterator[JiraClient]:
    """Dependency: a request-scoped Jira client built from settings"""
    settings = get_settings()
    if not settings.jira_configured:
        raise JiraError("Jira is not configured", payload="set JIRA_BASE_URL, JIRA_EMAIL, JIRA_API_TOKEN and JIRA_PROJECT_KEY")
    async with JiraClient.from_settings(settings) as client:
        yield client
