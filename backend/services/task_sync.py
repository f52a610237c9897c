"""
Task reconciliation between the local database and Jira.

Jira is authoritative for summary, description, status, priority and
assignee. The local database is authoritative for a task's partner and task
type: sync only fills those in from issue labels while they are still empty,
it never overwrites a value someone set locally.

Every tracker call happens before the matching local write, so a failed call
leaves local state untouched. Calls are awaited one at a time.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_db
from backend.models.comment import Comment
from backend.models.partner import Partner
from backend.models.task import Task
from backend.models.user import User
from backend.services.jira_client import JiraClient, adf_to_text, get_jira_client
from backend.services.task_metadata import (
    build_partner_lookup,
    extract_partner_from_labels,
    extract_task_type_from_labels,
    replace_description_header,
    replace_metadata_labels,
    resolve_partner_id,
)
from backend.utils.helpers import parse_iso_datetime
from backend.utils.logger import get_logger

logger = get_logger(__name__)

DONE_CATEGORY = "done"
UNSET = object()


class SyncConflictError(Exception):
    """Another sync inserted the same Jira issue first"""


@dataclass
class SyncResult:
    synced: int = 0
    created: int = 0
    updated: int = 0

    @property
    def message(self) -> str:
        return f"Synced {self.synced} tasks ({self.created} created, {self.updated} updated)"


def canonical_fields(issue: dict, now: datetime) -> dict:
    """Fields Jira owns, as they should be stored locally"""
    fields = issue.get("fields") or {}
    assignee = fields.get("assignee") or {}
    return {
        "jira_id": issue.get("id"),
        "summary": fields.get("summary") or "",
        "description": adf_to_text(fields.get("description")),
        "status": (fields.get("status") or {}).get("name") or "Unknown",
        "priority": (fields.get("priority") or {}).get("name") or "Medium",
        "assignee": assignee.get("emailAddress"),
        "last_synced_at": now,
    }


def comment_fields(jira_comment: dict) -> dict:
    author = jira_comment.get("author") or {}
    avatars = author.get("avatarUrls") or {}
    return {
        "jira_comment_id": str(jira_comment["id"]),
        "author_name": author.get("displayName") or "Unknown",
        "author_email": author.get("emailAddress"),
        "author_avatar": avatars.get("48x48"),
        "body": adf_to_text(jira_comment.get("body")),
        "jira_created_at": parse_iso_datetime(jira_comment.get("created")),
        "jira_updated_at": parse_iso_datetime(jira_comment.get("updated")),
    }


def filter_done_transitions(transitions: List[dict]) -> List[dict]:
    """Only transitions into a status of the "done" category are offered"""
    return [
        {"id": t["id"], "name": t["name"], "to_status": t["to"]["name"]}
        for t in transitions
        if (t.get("to") or {}).get("statusCategory", {}).get("key") == DONE_CATEGORY
    ]


class TaskSyncService:
    """Create, sync, transition and comment on tasks, keeping Jira and the DB aligned"""

    def __init__(self, db: AsyncSession, jira: JiraClient):
        self.db = db
        self.jira = jira

    async def _partner_name(self, partner_id: Optional[int]) -> Optional[str]:
        if partner_id is None:
            return None
        partner = await self.db.get(Partner, partner_id)
        return partner.name if partner else None

    async def create_task(
        self,
        user: User,
        summary: str,
        description: Optional[str] = None,
        priority: str = "Medium",
        task_type: Optional[str] = None,
        partner_id: Optional[int] = None,
    ) -> Task:
        partner_name = await self._partner_name(partner_id)

        issue = await self.jira.create_issue(
            summary=summary,
            description=description,
            priority=priority,
            partner_name=partner_name,
            task_type=task_type,
        )
        fields = issue.get("fields") or {}

        task = Task(
            jira_key=issue["key"],
            jira_id=issue.get("id"),
            summary=fields.get("summary") or summary,
            description=description,
            status=(fields.get("status") or {}).get("name") or "To Do",
            priority=(fields.get("priority") or {}).get("name") or priority,
            task_type=task_type,
            user_id=user.id,
            partner_id=partner_id,
            last_synced_at=datetime.utcnow(),
        )
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)
        logger.info(f"User {user.email} created task {task.jira_key}")
        return task

    async def sync_all(self, user: User) -> SyncResult:
        """Pull every tracked issue into the local database; safe to rerun"""
        issues = await self.jira.search_tracked_issues()

        partners = (await self.db.execute(select(Partner.id, Partner.name))).all()
        partner_lookup: Dict[str, int] = build_partner_lookup(partners)

        result = SyncResult()
        for issue in issues:
            created = await self._sync_issue(issue, partner_lookup, user)
            if created:
                result.created += 1
            else:
                result.updated += 1
            result.synced += 1

        await self.db.commit()
        logger.info(f"{result.message} for {user.email}")
        return result

    async def _find_by_key(self, jira_key: str) -> Optional[Task]:
        query = await self.db.execute(select(Task).where(Task.jira_key == jira_key))
        return query.scalar_one_or_none()

    async def _sync_issue(self, issue: dict, partner_lookup: Dict[str, int], user: User) -> bool:
        labels = (issue.get("fields") or {}).get("labels") or []
        recovered_partner_id = resolve_partner_id(partner_lookup, extract_partner_from_labels(labels))
        recovered_task_type = extract_task_type_from_labels(labels)
        data = canonical_fields(issue, datetime.utcnow())

        existing = await self._find_by_key(issue["key"])
        if existing:
            for key, value in data.items():
                setattr(existing, key, value)
            if existing.partner_id is None and recovered_partner_id is not None:
                existing.partner_id = recovered_partner_id
            if existing.task_type is None and recovered_task_type is not None:
                existing.task_type = recovered_task_type
            await self.db.flush()
            return False

        # Issue created directly in Jira with our label
        self.db.add(Task(
            jira_key=issue["key"],
            partner_id=recovered_partner_id,
            task_type=recovered_task_type,
            user_id=user.id,
            **data,
        ))
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Duplicate insert for {issue['key']} during sync: {e}")
            raise SyncConflictError(
                f"Task {issue['key']} was inserted by a concurrent sync; run sync again"
            ) from e
        return True

    async def get_done_transitions(self, task: Task) -> List[dict]:
        return filter_done_transitions(await self.jira.get_transitions(task.jira_key))

    async def transition_task(self, task: Task, transition_id: str) -> Task:
        await self.jira.transition_issue(task.jira_key, transition_id)
        issue = await self.jira.get_issue(task.jira_key)

        task.status = issue["fields"]["status"]["name"]
        task.last_synced_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(task)
        return task

    async def update_task_metadata(self, task: Task, partner_id=UNSET, task_type=UNSET) -> Task:
        """Apply a local partner/type edit and rewrite the issue's labels and header"""
        new_partner_id = task.partner_id if partner_id is UNSET else partner_id
        new_task_type = task.task_type if task_type is UNSET else task_type
        if hasattr(new_task_type, "value"):
            new_task_type = new_task_type.value
        partner_name = await self._partner_name(new_partner_id)

        issue = await self.jira.get_issue(task.jira_key)
        fields = issue.get("fields") or {}
        labels = replace_metadata_labels(
            fields.get("labels") or [], self.jira.label, partner_name, new_task_type
        )
        doc = replace_description_header(fields.get("description"), partner_name, new_task_type)
        await self.jira.update_issue(task.jira_key, labels=labels, description=doc or "")

        task.partner_id = new_partner_id
        task.task_type = new_task_type
        task.description = adf_to_text(doc) or None
        task.last_synced_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(task)
        logger.info(f"Updated metadata on {task.jira_key}: partner={partner_name} type={new_task_type}")
        return task

    async def refresh_comments(self, task: Task) -> List[Comment]:
        """Mirror Jira's comments for a task exactly, including deletions"""
        jira_comments = await self.jira.get_comments(task.jira_key)

        query = await self.db.execute(select(Comment).where(Comment.task_id == task.id))
        local_by_jira_id = {c.jira_comment_id: c for c in query.scalars().all()}

        mirrored: List[Comment] = []
        for jira_comment in jira_comments:
            data = comment_fields(jira_comment)
            comment = local_by_jira_id.get(data["jira_comment_id"])
            if comment is None:
                comment = Comment(task_id=task.id, **data)
                self.db.add(comment)
            else:
                comment.body = data["body"]
                comment.jira_updated_at = data["jira_updated_at"]
            mirrored.append(comment)

        upstream_ids = [str(c["id"]) for c in jira_comments]
        await self.db.execute(
            delete(Comment).where(
                Comment.task_id == task.id,
                Comment.jira_comment_id.notin_(upstream_ids),
            )
        )
        await self.db.commit()
        for comment in mirrored:
            await self.db.refresh(comment)
        return mirrored

    async def add_comment(self, task: Task, content: str) -> Comment:
        jira_comment = await self.jira.add_comment(task.jira_key, content)

        comment = Comment(task_id=task.id, **comment_fields(jira_comment))
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    async def update_comment(self, task: Task, comment: Comment, content: str) -> Comment:
        jira_comment = await self.jira.update_comment(task.jira_key, comment.jira_comment_id, content)

        data = comment_fields(jira_comment)
        comment.body = data["body"]
        comment.jira_updated_at = data["jira_updated_at"]
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    async def delete_comment(self, task: Task, comment: Comment) -> None:
        await self.jira.delete_comment(task.jira_key, comment.jira_comment_id)

        await self.db.delete(comment)
        await self.db.commit()


async def get_task_sync_service(
    db: AsyncSession = Depends(get_db),
    jira: JiraClient = Depends(get_jira_client),
) -> TaskSyncService:
    return TaskSyncService(db, jira)
