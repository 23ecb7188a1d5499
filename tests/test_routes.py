"""Tests for the role and permission API routes."""

import pytest
import pytest_asyncio

from app.features.notifications.service import get_notification_sender
from app.features.permissions.catalog import PERMISSION_MATRIX, PermissionCode, RoleCode
from conftest import auth


class RecordingSender:
    def __init__(self):
        self.events = []

    async def send(self, event):
        self.events.append(event)


@pytest.fixture()
def sender(app) -> RecordingSender:
    recorder = RecordingSender()
    app.dependency_overrides[get_notification_sender] = lambda: recorder
    return recorder


@pytest_asyncio.fixture()
async def admin(seeded, make_user, grant):
    user = await make_user("admin@example.com")
    await grant(user, RoleCode.ADMIN.value)
    return user


def codes(role: RoleCode) -> list[str]:
    return sorted(code.value for code in PERMISSION_MATRIX[role])


# ============================================================================
# Catalog
# ============================================================================

@pytest.mark.asyncio
async def test_catalog_requires_authentication(async_client, seeded):
    assert (await async_client.get("/roles")).status_code == 401
    assert (await async_client.get("/permissions")).status_code == 401


@pytest.mark.asyncio
async def test_list_roles(async_client, seeded, make_user):
    user = await make_user()

    response = await async_client.get("/roles", headers=auth(user))

    assert response.status_code == 200
    body = response.json()
    assert {role["code"] for role in body} == {role.value for role in RoleCode}
    assert set(body[0]) == {"id", "code", "name"}


@pytest.mark.asyncio
async def test_list_permissions(async_client, seeded, make_user):
    user = await make_user()

    response = await async_client.get("/permissions", headers=auth(user))

    assert response.status_code == 200
    body = response.json()
    assert [perm["code"] for perm in body] == sorted(code.value for code in PermissionCode)
    assert all(perm["description"] for perm in body)


# ============================================================================
# Organization roles
# ============================================================================

@pytest.mark.asyncio
async def test_admin_assigns_org_role(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.put(
        f"/users/{target.id}/org-roles",
        json={"add": ["viewer"], "remove": []},
        headers=auth(admin),
    )

    assert response.status_code == 200
    assert response.json() == {
        "orgRoles": ["viewer"],
        "projectRoles": [],
        "permissions": codes(RoleCode.VIEWER),
    }
    assert len(sender.events) == 1
    event = sender.events[0]
    assert (event.user_id, event.changed_by_id, event.added) == (target.id, admin.id, ("viewer",))
    assert event.scope == "organization"


@pytest.mark.asyncio
async def test_removals_apply_before_additions(async_client, admin, make_user, grant, sender):
    target = await make_user()
    await grant(target, "viewer")
    await grant(target, "officer")

    response = await async_client.put(
        f"/users/{target.id}/org-roles",
        json={"add": ["viewer"], "remove": ["viewer", "officer"]},
        headers=auth(admin),
    )

    assert response.status_code == 200
    assert response.json()["orgRoles"] == ["viewer"]


@pytest.mark.asyncio
async def test_assigning_roles_requires_change_user_permissions(
    async_client, seeded, make_user, grant, sender
):
    caller = await make_user()
    target = await make_user()
    await grant(caller, "user")

    response = await async_client.put(
        f"/users/{target.id}/org-roles",
        json={"add": ["admin"]},
        headers=auth(caller),
    )

    assert response.status_code == 403
    assert response.json()["missing"] == ["change_user_permissions"]
    assert sender.events == []


@pytest.mark.asyncio
async def test_unknown_role_code_is_rejected(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.put(
        f"/users/{target.id}/org-roles",
        json={"add": ["viewer", "auditor"]},
        headers=auth(admin),
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "Unknown role codes: auditor"}
    assert sender.events == []


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(async_client, admin, sender):
    response = await async_client.put(
        "/users/01HZZZZZZZZZZZZZZZZZZZZZZZ/org-roles",
        json={"add": ["viewer"]},
        headers=auth(admin),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_revoked_role_is_denied_on_next_request(async_client, admin, make_user, grant, sender):
    target = await make_user()
    await grant(target, "admin")
    url = f"/users/{admin.id}/effective-permissions"
    assert (await async_client.get(url, headers=auth(target))).status_code == 200

    await async_client.put(
        f"/users/{target.id}/org-roles", json={"remove": ["admin"]}, headers=auth(admin)
    )
    response = await async_client.get(url, headers=auth(target))

    assert response.status_code == 403


# ============================================================================
# Project roles
# ============================================================================

@pytest.mark.asyncio
async def test_admin_assigns_project_role(async_client, admin, make_user, make_project, grant, sender):
    target = await make_user()
    project = await make_project()
    await grant(target, "viewer")

    response = await async_client.post(
        f"/users/{target.id}/project-roles",
        json={"projectId": project.id, "add": ["officer"]},
        headers=auth(admin),
    )

    assert response.status_code == 200
    assert response.json() == {
        "orgRoles": ["viewer"],
        "projectRoles": ["officer"],
        "permissions": sorted(codes(RoleCode.VIEWER) + ["approve_controls"]),
    }
    assert sender.events[0].project_id == project.id
    assert sender.events[0].scope == f"project {project.id}"


@pytest.mark.asyncio
async def test_project_role_for_unknown_project_is_not_found(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.post(
        f"/users/{target.id}/project-roles",
        json={"projectId": 999, "add": ["officer"]},
        headers=auth(admin),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_project_role_requires_positive_project_id(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.post(
        f"/users/{target.id}/project-roles",
        json={"projectId": 0, "add": ["officer"]},
        headers=auth(admin),
    )

    assert response.status_code == 400
    assert "projectId" in response.json() or "project_id" in response.json()


@pytest.mark.asyncio
async def test_list_project_roles_grouped_by_project(
    async_client, admin, make_user, make_project, grant
):
    target = await make_user()
    soc = await make_project("SOC 2")
    iso = await make_project("ISO 27001")
    await grant(target, "officer", project_id=soc.id)
    await grant(target, "viewer", project_id=soc.id)
    await grant(target, "collaborator", project_id=iso.id)

    response = await async_client.get(f"/users/{target.id}/project-roles", headers=auth(target))

    assert response.status_code == 200
    assert response.json() == [
        {"projectId": soc.id, "projectName": "SOC 2", "roles": ["officer", "viewer"]},
        {"projectId": iso.id, "projectName": "ISO 27001", "roles": ["collaborator"]},
    ]


@pytest.mark.asyncio
async def test_other_users_project_roles_need_change_user_permissions(
    async_client, seeded, make_user, grant
):
    caller = await make_user()
    target = await make_user()
    await grant(caller, "viewer")

    response = await async_client.get(f"/users/{target.id}/project-roles", headers=auth(caller))

    assert response.status_code == 403


# ============================================================================
# Effective permissions
# ============================================================================

@pytest.mark.asyncio
async def test_effective_permissions_with_project_scope(
    async_client, admin, make_user, make_project, grant
):
    target = await make_user()
    project = await make_project()
    await grant(target, "viewer")
    await grant(target, "officer", project_id=project.id)

    org_only = await async_client.get(
        f"/users/{target.id}/effective-permissions", headers=auth(admin)
    )
    scoped = await async_client.get(
        f"/users/{target.id}/effective-permissions?projectId={project.id}", headers=auth(admin)
    )

    assert org_only.json() == {
        "orgRoles": ["viewer"],
        "projectRoles": [],
        "permissions": codes(RoleCode.VIEWER),
    }
    assert scoped.json()["projectRoles"] == ["officer"]
    assert "approve_controls" in scoped.json()["permissions"]


@pytest.mark.asyncio
async def test_users_can_read_their_own_effective_permissions(async_client, seeded, make_user):
    user = await make_user()

    response = await async_client.get(
        f"/users/{user.id}/effective-permissions", headers=auth(user)
    )

    assert response.status_code == 200
    assert response.json() == {"orgRoles": [], "projectRoles": [], "permissions": []}


@pytest.mark.asyncio
async def test_effective_permissions_rejects_malformed_project(async_client, admin):
    response = await async_client.get(
        f"/users/{admin.id}/effective-permissions?projectId=abc", headers=auth(admin)
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Project ID is required for this operation"}


@pytest.mark.asyncio
async def test_preview_does_not_change_assignments(async_client, admin, make_user):
    target = await make_user()

    response = await async_client.post(
        f"/users/{target.id}/effective-permissions/preview",
        json={"orgRoles": ["viewer"], "projectRoles": ["officer"]},
        headers=auth(admin),
    )
    after = await async_client.get(
        f"/users/{target.id}/effective-permissions", headers=auth(admin)
    )

    assert response.status_code == 200
    # Project roles are ignored without a project
    assert response.json() == {
        "orgRoles": ["viewer"],
        "projectRoles": [],
        "permissions": codes(RoleCode.VIEWER),
    }
    assert after.json()["orgRoles"] == []


@pytest.mark.asyncio
async def test_preview_with_project_includes_project_roles(async_client, admin, make_user):
    target = await make_user()

    response = await async_client.post(
        f"/users/{target.id}/effective-permissions/preview",
        json={"orgRoles": [], "projectId": 3, "projectRoles": ["officer"]},
        headers=auth(admin),
    )

    assert response.json() == {
        "orgRoles": [],
        "projectRoles": ["officer"],
        "permissions": ["approve_controls"],
    }


@pytest.mark.asyncio
async def test_my_permissions(async_client, admin):
    response = await async_client.get("/me/permissions", headers=auth(admin))

    assert response.status_code == 200
    assert response.json()["orgRoles"] == ["admin"]
    assert response.json()["permissions"] == sorted(code.value for code in PermissionCode)


@pytest.mark.asyncio
async def test_my_permissions_requires_authentication(async_client, seeded):
    response = await async_client.get("/me/permissions?projectId=abc")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")

    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_out_of_range_project_id_is_invalid(async_client, seeded, make_user):
    user = await make_user()

    response = await async_client.get(
        f"/users/{user.id}/effective-permissions?projectId=99999999999999999999",
        headers=auth(user),
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Project ID is required for this operation"}


@pytest.mark.asyncio
async def test_project_role_rejects_project_id_beyond_column_range(
    async_client, admin, make_user, sender
):
    target = await make_user()

    response = await async_client.post(
        f"/users/{target.id}/project-roles",
        json={"projectId": 2**31, "add": ["officer"]},
        headers=auth(admin),
    )

    assert response.status_code == 400
    assert sender.events == []


@pytest.mark.asyncio
async def test_project_roles_of_unknown_user_is_not_found(async_client, admin):
    response = await async_client.get(
        "/users/01HZZZZZZZZZZZZZZZZZZZZZZZ/project-roles", headers=auth(admin)
    )

    assert response.status_code == 404


# ============================================================================
# Bulk assignment
# ============================================================================

@pytest.mark.asyncio
async def test_bulk_assign_org_and_project_roles(
    async_client, admin, make_user, make_project, grant, sender
):
    first = await make_user()
    second = await make_user()
    project = await make_project()
    await grant(second, "collaborator")

    response = await async_client.post(
        "/admin/users/bulk-assign",
        json={
            "user_ids": [first.id, second.id, first.id],
            "org_roles": {"add": ["viewer"], "remove": ["collaborator"]},
            "project_roles": {"project_id": project.id, "add": ["officer"]},
        },
        headers=auth(admin),
    )

    assert response.status_code == 200
    assert response.json() == {"updatedUserIds": [first.id, second.id]}
    for user in (first, second):
        effective = await async_client.get(
            f"/users/{user.id}/effective-permissions?projectId={project.id}", headers=auth(admin)
        )
        assert effective.json()["orgRoles"] == ["viewer"]
        assert effective.json()["projectRoles"] == ["officer"]

    assert len(sender.events) == 4
    assert {(event.user_id, event.scope) for event in sender.events} == {
        (first.id, "organization"),
        (second.id, "organization"),
        (first.id, f"project {project.id}"),
        (second.id, f"project {project.id}"),
    }


@pytest.mark.asyncio
async def test_bulk_assign_with_unknown_user_writes_nothing(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.post(
        "/admin/users/bulk-assign",
        json={"userIds": [target.id, "01HZZZZZZZZZZZZZZZZZZZZZZZ"], "orgRoles": {"add": ["viewer"]}},
        headers=auth(admin),
    )
    after = await async_client.get(f"/users/{target.id}/effective-permissions", headers=auth(admin))

    assert response.status_code == 404
    assert response.json() == {"detail": "Users not found: 01HZZZZZZZZZZZZZZZZZZZZZZZ"}
    assert after.json()["orgRoles"] == []
    assert sender.events == []


@pytest.mark.asyncio
async def test_bulk_assign_with_unknown_role_writes_nothing(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.post(
        "/admin/users/bulk-assign",
        json={"userIds": [target.id], "orgRoles": {"add": ["viewer", "auditor"]}},
        headers=auth(admin),
    )
    after = await async_client.get(f"/users/{target.id}/effective-permissions", headers=auth(admin))

    assert response.status_code == 400
    assert after.json()["orgRoles"] == []
    assert sender.events == []


@pytest.mark.asyncio
async def test_bulk_assign_with_unknown_project_is_not_found(async_client, admin, make_user, sender):
    target = await make_user()

    response = await async_client.post(
        "/admin/users/bulk-assign",
        json={"userIds": [target.id], "projectRoles": {"projectId": 999, "add": ["officer"]}},
        headers=auth(admin),
    )

    assert response.status_code == 404
    assert sender.events == []


@pytest.mark.asyncio
async def test_bulk_assign_requires_change_user_permissions(
    async_client, seeded, make_user, grant, sender
):
    caller = await make_user()
    target = await make_user()
    await grant(caller, "user")

    response = await async_client.post(
        "/admin/users/bulk-assign",
        json={"userIds": [target.id], "orgRoles": {"add": ["admin"]}},
        headers=auth(caller),
    )

    assert response.status_code == 403
    assert response.json()["missing"] == ["change_user_permissions"]


@pytest.mark.asyncio
async def test_bulk_assign_requires_at_least_one_user(async_client, admin, sender):
    response = await async_client.post(
        "/admin/users/bulk-assign",
        json={"userIds": [], "orgRoles": {"add": ["viewer"]}},
        headers=auth(admin),
    )

    assert response.status_code == 400
