from datetime import timedelta

import pytest
from httpx import AsyncClient

from neighbourhood_chat.domain.identifiers import new_id, utcnow
from neighbourhood_chat.gateways.audit_gateway import AuditGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.uow import UnitOfWork

pytestmark = pytest.mark.asyncio

FLAGGED_URL = "/api/moderation/flagged"


def action_url(content_type: str, content_id: str, action: str) -> str:
    return f"/api/moderation/{content_type}/{content_id}/{action}"


def report_entry(reporter_key: str, reporter_id: str | None, reason: str, **extra) -> dict:
    return {
        "id": new_id(),
        reporter_key: reporter_id,
        "reason": reason,
        "reportedAt": utcnow().isoformat(),
        **extra,
    }


@pytest.fixture
async def flagged_message(seed, make_message):
    return await make_message(
        seed.G1,
        seed.U1,
        "buy cheap watches",
        is_reported=True,
        flagged_at=utcnow(),
        reported_by=[report_entry("userId", seed.U3, "spam", submittedBy=seed.U3)],
    )


@pytest.fixture
async def flagged_notice(seed, database):
    notice = models.Notice(
        id=new_id(),
        title="Lost cat",
        content="Grey tabby, answers to Mochi",
        author_id=seed.U2,
        status="active",
        is_flagged=True,
        flagged_at=utcnow() - timedelta(hours=2),
        reports=[
            report_entry("reporterId", seed.U1, "duplicate post"),
            report_entry("reporterId", None, "off topic"),
        ],
    )
    async with database.session() as session:
        session.add(notice)
        await session.commit()
    return notice.id


@pytest.fixture
async def flagged_report(seed, database):
    report = models.Report(
        id=new_id(),
        title="Broken streetlight",
        description="Corner of Maple and Oak",
        reporter_id=seed.U9,
        report_status="active",
        is_flagged=True,
        flagged_at=utcnow() - timedelta(hours=1),
        reports=[report_entry("reporterId", seed.U2, "already fixed")],
    )
    async with database.session() as session:
        session.add(report)
        await session.commit()
    return report.id


async def audit_entries(database, target_type: str, target_id: str):
    async with database.session() as session:
        return await AuditGateway(session, UnitOfWork(session)).list_for_target(
            target_type, target_id
        )


async def test_approve_flagged_message(
    client: AsyncClient, seed, auth_for, database, flagged_message
):
    response = await client.post(
        action_url("message", flagged_message, "approve"), headers=auth_for(seed.A1)
    )

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == flagged_message
    assert data["contentType"] == "message"
    assert data["status"] == "active"
    assert data["moderatedBy"] == seed.A1
    assert data["moderationReason"] == "Content approved by administrator"

    async with database.session() as session:
        message = await session.get(models.Message, flagged_message)
        assert message.is_reported is False
        assert message.reported_by == []
        assert message.flagged_at is None
        assert message.moderation_status == "active"

    entries = await audit_entries(database, "message", flagged_message)
    assert len(entries) == 1
    assert entries[0].action == "content_approve"
    assert entries[0].admin_id == seed.A1
    assert entries[0].details["reportsCleared"] == 1


async def test_archive_requires_reason(client: AsyncClient, seed, auth_for, flagged_message):
    response = await client.post(
        action_url("message", flagged_message, "archive"),
        headers=auth_for(seed.A1),
        json={"reason": "  "},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "MODERATION_REASON_REQUIRED"


async def test_remove_message_hides_it(
    client: AsyncClient, seed, auth_for, database, flagged_message
):
    response = await client.post(
        action_url("message", flagged_message, "remove"),
        headers=auth_for(seed.A1),
        json={"reason": "Advertising"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "removed"
    assert response.json()["moderationReason"] == "Advertising"

    fetched = await client.get(f"/api/chat/groups/{seed.G1}/messages", headers=auth_for(seed.U1))
    assert fetched.json() == []

    entries = await audit_entries(database, "message", flagged_message)
    assert entries[0].action == "content_remove"
    assert entries[0].details == {
        "reason": "Advertising",
        "previousStatus": "active",
        "newStatus": "removed",
    }


async def test_archive_notice(client: AsyncClient, seed, auth_for, database, flagged_notice):
    response = await client.post(
        action_url("notice", flagged_notice, "archive"),
        headers=auth_for(seed.A1),
        json={"reason": "Resolved"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "archived"

    async with database.session() as session:
        notice = await session.get(models.Notice, flagged_notice)
        assert notice.status == "archived"
        assert notice.moderated_by == seed.A1
        # archiving keeps the reports for the record
        assert len(notice.reports) == 2


async def test_approve_report(client: AsyncClient, seed, auth_for, database, flagged_report):
    response = await client.post(
        action_url("report", flagged_report, "approve"),
        headers=auth_for(seed.A1),
        json={"reason": "Still relevant"},
    )

    assert response.status_code == 200
    assert response.json()["moderationReason"] == "Still relevant"

    async with database.session() as session:
        report = await session.get(models.Report, flagged_report)
        assert report.is_flagged is False
        assert report.reports == []
        assert report.report_status == "active"


async def test_approve_unflagged_content(client: AsyncClient, seed, auth_for, make_message):
    message_id = await make_message(seed.G1, seed.U1)

    response = await client.post(
        action_url("message", message_id, "approve"), headers=auth_for(seed.A1)
    )

    assert response.status_code == 400
    assert response.json()["code"] == "CONTENT_NOT_FLAGGED"


async def test_moderation_input_validation(client: AsyncClient, seed, auth_for):
    headers = auth_for(seed.A1)

    bad_type = await client.post(action_url("photo", new_id(), "approve"), headers=headers)
    assert bad_type.json()["code"] == "INVALID_CONTENT_TYPE"

    bad_id = await client.post(action_url("notice", "N1", "approve"), headers=headers)
    assert bad_id.json()["code"] == "INVALID_CONTENT_ID"

    bad_action = await client.post(action_url("notice", new_id(), "ban"), headers=headers)
    assert bad_action.json()["code"] == "INVALID_MODERATION_ACTION"

    for response in (bad_type, bad_id, bad_action):
        assert response.status_code == 400

    missing = await client.post(action_url("notice", new_id(), "approve"), headers=headers)
    assert missing.status_code == 404
    assert missing.json()["code"] == "CONTENT_NOT_FOUND"


async def test_moderation_requires_admin(client: AsyncClient, seed, auth_for, flagged_message):
    response = await client.post(
        action_url("message", flagged_message, "approve"), headers=auth_for(seed.U1)
    )
    assert response.status_code == 403
    assert response.json()["code"] == "ADMIN_REQUIRED"

    listing = await client.get(FLAGGED_URL, headers=auth_for(seed.U1))
    assert listing.status_code == 403


async def test_flagged_content_listing(
    client: AsyncClient, seed, auth_for, flagged_message, flagged_notice, flagged_report
):
    response = await client.get(FLAGGED_URL, headers=auth_for(seed.A1))

    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 3
    assert page["page"] == 1
    assert page["totalPages"] == 1
    # newest flag first
    assert [item["id"] for item in page["content"]] == [
        flagged_message,
        flagged_report,
        flagged_notice,
    ]

    notice = page["content"][2]
    assert notice["contentType"] == "notice"
    assert notice["title"] == "Lost cat"
    assert notice["author"]["firstName"] == "Second"
    assert notice["reportCount"] == 2
    reporters = [r["reportedBy"]["firstName"] for r in notice["reports"]]
    assert reporters == ["Test", "Anonymous"]
    assert [r["isAnonymous"] for r in notice["reports"]] == [False, True]

    message = page["content"][0]
    assert message["title"] == ""
    assert message["content"] == "buy cheap watches"
    assert message["reports"][0]["reason"] == "spam"


async def test_flagged_content_filter_sort_and_page(
    client: AsyncClient, seed, auth_for, flagged_message, flagged_notice, flagged_report
):
    headers = auth_for(seed.A1)

    notices = await client.get(FLAGGED_URL, headers=headers, params={"contentType": "notice"})
    assert [item["id"] for item in notices.json()["content"]] == [flagged_notice]

    by_reports = await client.get(
        FLAGGED_URL, headers=headers, params={"sortBy": "reportCount", "sortOrder": "desc"}
    )
    assert by_reports.json()["content"][0]["id"] == flagged_notice

    second_page = await client.get(
        FLAGGED_URL, headers=headers, params={"limit": 1, "page": 2, "sortOrder": "asc"}
    )
    body = second_page.json()
    assert body["totalPages"] == 3
    assert body["limit"] == 1
    assert [item["id"] for item in body["content"]] == [flagged_report]


async def test_flagged_content_rejects_unknown_filter(client: AsyncClient, seed, auth_for):
    response = await client.get(
        FLAGGED_URL, headers=auth_for(seed.A1), params={"contentType": "photo"}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


async def test_approved_content_leaves_flagged_listing(
    client: AsyncClient, seed, auth_for, flagged_message
):
    await client.post(action_url("message", flagged_message, "approve"), headers=auth_for(seed.A1))

    response = await client.get(FLAGGED_URL, headers=auth_for(seed.A1))

    assert response.json()["total"] == 0
    assert response.json()["content"] == []
