"""
Tests for the authorization engine: role gate, resource gates, list filters.

Everything here is pure: no storage, no event loop.
"""

import pytest

from forgeguard.auth.capabilities import (
    ROUTE_ROLES,
    Decision,
    Operation,
    enforce,
    operation_gate,
    role_gate,
)
from forgeguard.auth.context import SubjectContext
from forgeguard.auth.policies import (
    admin_override,
    can_delete_document,
    can_delete_project,
    can_manage_documents,
    can_manage_user,
    can_modify_project,
    can_read_document,
    can_read_project,
    can_review_completion,
    can_send_message,
    can_view_all_documents,
    completion_request_filter,
    document_list_filter,
    project_list_filter,
)
from forgeguard.core.models import AccessGrant, Document, MessageType, Project, Role
from forgeguard.errors import AuthorizationError, DenialReason


ADMIN = SubjectContext(id="u_admin", role=Role.ADMIN, email="admin@example.com")
LEAD = SubjectContext(id="u_lead", role=Role.PROJECT_LEAD, email="lead@example.com")
CREATOR = SubjectContext(id="u_creator", role=Role.PROJECT_LEAD, email="creator@example.com")
OTHER_LEAD = SubjectContext(id="u_other", role=Role.PROJECT_LEAD, email="other@example.com")
DEV = SubjectContext(id="u_dev", role=Role.DEVELOPER, email="dev@example.com")
OUTSIDER = SubjectContext(id="u_outsider", role=Role.DEVELOPER, email="outsider@example.com")


def make_project(**fields) -> Project:
    defaults = dict(
        id="proj_1",
        name="Apollo",
        created_by=CREATOR.id,
        project_lead=LEAD.id,
        assigned_developers=[DEV.id],
    )
    return Project(**{**defaults, **fields})


def make_document(**fields) -> Document:
    defaults = dict(
        id="doc_1",
        stored_name="design_1_ab.pdf",
        original_name="design.pdf",
        size=10,
        content_type="application/pdf",
        checksum="0" * 64,
        storage_key="proj_1/design_1_ab.pdf",
        project_id="proj_1",
        uploaded_by=LEAD.id,
        accessible_by=[
            AccessGrant(user_id=LEAD.id, role=Role.PROJECT_LEAD),
            AccessGrant(user_id=DEV.id, role=Role.DEVELOPER),
        ],
    )
    return Document(**{**defaults, **fields})


PROJECT = make_project()
DOCUMENT = make_document()


# =============================================================================
# Role gate
# =============================================================================


class TestRoleGate:
    def test_allowed(self):
        decision = role_gate(Role.ADMIN, [Role.ADMIN, Role.PROJECT_LEAD])
        assert decision.allowed
        assert decision.reason is None

    def test_denied(self):
        decision = role_gate(Role.DEVELOPER, [Role.ADMIN])
        assert not decision
        assert decision.reason == DenialReason.INSUFFICIENT_ROLE

    def test_accepts_plain_strings(self):
        assert role_gate("project-lead", ["admin", "project-lead"]).allowed

    def test_unknown_role_is_denied_not_raised(self):
        assert not role_gate("superuser", [Role.ADMIN]).allowed

    def test_enforce_raises_with_reason(self):
        with pytest.raises(AuthorizationError) as exc_info:
            enforce(role_gate(Role.DEVELOPER, [Role.ADMIN]))
        assert exc_info.value.reason == DenialReason.INSUFFICIENT_ROLE
        assert exc_info.value.status_code == 403

    def test_enforce_allows_silently(self):
        enforce(Decision.allow())

    def test_every_operation_has_roles(self):
        assert set(ROUTE_ROLES) == set(Operation)

    @pytest.mark.parametrize("operation", [op for op in Operation if op.value.startswith("user.") and op != Operation.USER_LIST_ASSIGNABLE])
    def test_user_management_is_admin_only(self, operation):
        assert operation_gate(Role.ADMIN, operation).allowed
        assert not operation_gate(Role.PROJECT_LEAD, operation).allowed
        assert not operation_gate(Role.DEVELOPER, operation).allowed

    def test_route_table(self):
        assert ROUTE_ROLES[Operation.PROJECT_CREATE] == {Role.ADMIN, Role.PROJECT_LEAD}
        assert ROUTE_ROLES[Operation.PROJECT_UPDATE] == {Role.ADMIN, Role.PROJECT_LEAD}
        assert ROUTE_ROLES[Operation.PROJECT_DELETE] == {Role.ADMIN}
        assert ROUTE_ROLES[Operation.DOCUMENT_UPLOAD] == {Role.ADMIN, Role.PROJECT_LEAD}
        assert ROUTE_ROLES[Operation.COMPLETION_REQUEST] == {Role.DEVELOPER}
        assert ROUTE_ROLES[Operation.COMPLETION_REVIEW] == {Role.ADMIN, Role.PROJECT_LEAD}


# =============================================================================
# Admin supremacy
# =============================================================================


class TestAdmin:
    @pytest.mark.parametrize("project", [
        make_project(),
        make_project(created_by="u_x", project_lead="u_y", assigned_developers=[]),
    ])
    def test_admin_reads_and_manages_any_project(self, project):
        assert can_read_project(ADMIN, project)
        assert can_modify_project(ADMIN, project)
        assert can_delete_project(ADMIN, project)
        assert can_manage_documents(ADMIN, project)
        assert can_view_all_documents(ADMIN, project)
        assert can_review_completion(ADMIN, project)
        assert project_list_filter(ADMIN) is None
        assert document_list_filter(ADMIN, project) is None
        assert completion_request_filter(ADMIN) is None

    def test_admin_reads_documents_not_on_the_list(self):
        document = make_document(accessible_by=[])
        assert can_read_document(ADMIN, document)
        assert can_delete_document(ADMIN, document, PROJECT)

    def test_override_wraps_any_rule(self):
        @admin_override
        def never(subject, resource):
            return False

        assert never(ADMIN, None) is True
        assert never(DEV, None) is False
        assert never.__name__ == "never"


# =============================================================================
# Projects
# =============================================================================


class TestProjects:
    @pytest.mark.parametrize("subject", [LEAD, CREATOR])
    def test_owning_or_leading_lead(self, subject):
        assert can_read_project(subject, PROJECT)
        assert can_modify_project(subject, PROJECT)
        assert not can_delete_project(subject, PROJECT)

    def test_unrelated_lead(self):
        assert not can_read_project(OTHER_LEAD, PROJECT)
        assert not can_modify_project(OTHER_LEAD, PROJECT)

    def test_lead_listed_as_developer_gets_nothing(self):
        project = make_project(assigned_developers=[OTHER_LEAD.id])
        assert not can_read_project(OTHER_LEAD, project)

    @pytest.mark.parametrize("developers", [[], [DEV.id], [OUTSIDER.id], [DEV.id, OUTSIDER.id]])
    @pytest.mark.parametrize("subject", [DEV, OUTSIDER])
    def test_developer_containment(self, subject, developers):
        project = make_project(assigned_developers=developers)
        assert can_read_project(subject, project) == (subject.id in developers)
        assert can_modify_project(subject, project) is False
        assert can_delete_project(subject, project) is False

    def test_developer_who_created_project_still_needs_assignment(self):
        project = make_project(created_by=DEV.id, assigned_developers=[])
        assert not can_read_project(DEV, project)

    def test_determinism(self):
        verdicts = {(can_read_project(s, PROJECT), can_modify_project(s, PROJECT)) for s in [DEV] * 50}
        assert len(verdicts) == 1


# =============================================================================
# Documents
# =============================================================================


class TestDocuments:
    def test_read_requires_access_list(self):
        assert can_read_document(DEV, DOCUMENT)
        assert can_read_document(LEAD, DOCUMENT)
        assert not can_read_document(OUTSIDER, DOCUMENT)

    def test_creator_not_on_list_cannot_read(self):
        assert not can_read_document(CREATOR, DOCUMENT)

    def test_manage_documents(self):
        assert can_manage_documents(LEAD, PROJECT)
        assert can_manage_documents(CREATOR, PROJECT)
        assert not can_manage_documents(OTHER_LEAD, PROJECT)
        assert not can_manage_documents(DEV, PROJECT)

    def test_delete(self):
        assert can_delete_document(LEAD, DOCUMENT, PROJECT)
        assert can_delete_document(CREATOR, DOCUMENT, PROJECT)
        assert not can_delete_document(DEV, DOCUMENT, PROJECT)
        assert not can_delete_document(OTHER_LEAD, DOCUMENT, PROJECT)

    def test_uploader_may_delete(self):
        document = make_document(uploaded_by=OTHER_LEAD.id)
        assert can_delete_document(OTHER_LEAD, document, PROJECT)

    def test_list_filter(self):
        assert document_list_filter(LEAD, PROJECT) is None
        visible = document_list_filter(DEV, PROJECT)
        assert visible(DOCUMENT)
        assert not visible(make_document(accessible_by=[]))


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    def test_plain_message_needs_project_access(self):
        assert can_send_message(DEV, PROJECT)
        assert can_send_message(LEAD, PROJECT)
        assert can_send_message(ADMIN, PROJECT)
        assert not can_send_message(OUTSIDER, PROJECT)

    def test_completion_request_is_for_assigned_developers(self):
        assert can_send_message(DEV, PROJECT, MessageType.COMPLETION_REQUEST)
        assert not can_send_message(OUTSIDER, PROJECT, MessageType.COMPLETION_REQUEST)
        assert not can_send_message(LEAD, PROJECT, MessageType.COMPLETION_REQUEST)
        assert not can_send_message(ADMIN, PROJECT, MessageType.COMPLETION_REQUEST)

    @pytest.mark.parametrize("message_type", ["completion-approved", "completion-rejected", "bogus"])
    def test_review_outcomes_cannot_be_sent(self, message_type):
        assert not can_send_message(LEAD, PROJECT, message_type)
        assert not can_send_message(ADMIN, PROJECT, message_type)

    def test_review(self):
        assert can_review_completion(LEAD, PROJECT)
        assert not can_review_completion(OTHER_LEAD, PROJECT)
        assert not can_review_completion(DEV, PROJECT)

    def test_completion_request_filter(self):
        reviewable = completion_request_filter(LEAD)
        assert reviewable(PROJECT)
        assert not reviewable(make_project(created_by="u_x", project_lead="u_y"))


# =============================================================================
# Users
# =============================================================================


class TestUsers:
    @pytest.mark.parametrize("operation", [Operation.USER_DELETE, Operation.USER_DEACTIVATE])
    def test_admin_cannot_target_self(self, operation):
        assert not can_manage_user(ADMIN, ADMIN.id, operation)
        assert can_manage_user(ADMIN, DEV.id, operation)

    def test_admin_cannot_change_own_role(self):
        assert not can_manage_user(ADMIN, ADMIN.id, Operation.USER_UPDATE, changes_role=True)
        assert can_manage_user(ADMIN, ADMIN.id, Operation.USER_UPDATE)

    @pytest.mark.parametrize("subject", [LEAD, DEV])
    def test_non_admins_manage_nobody(self, subject):
        assert not can_manage_user(subject, OUTSIDER.id, Operation.USER_UPDATE)
        assert not can_manage_user(subject, subject.id, Operation.USER_UPDATE)


# =============================================================================
# Project list filter
# =============================================================================


def test_project_list_filter_by_role():
    led = make_project(id="p1")
    unrelated = make_project(id="p2", created_by="u_x", project_lead="u_y", assigned_developers=[])

    lead_view = project_list_filter(LEAD)
    assert lead_view(led) and not lead_view(unrelated)

    dev_view = project_list_filter(DEV)
    assert dev_view(led) and not dev_view(unrelated)
