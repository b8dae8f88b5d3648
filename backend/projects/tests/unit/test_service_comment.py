# projects/tests/unit/test_service_comment.py
import pytest

from projects.exceptions import Forbidden, NotFound, ValidationFailed
from projects.models import Comment


@pytest.mark.django_db
class TestProjectComments:
    def test_add_prepends_comment_id(self, comment_service, test_project, test_user):
        first = comment_service.add_comment(test_project.id, test_user, "first")
        second = comment_service.add_comment(
            test_project.id, test_user, "second", mentions=[str(test_user.id)]
        )

        test_project.refresh_from_db()
        assert test_project.comment_ids == [second.id, first.id]
        assert second.name == "Test User"
        assert second.mentions == [str(test_user.id)]

    def test_reply_links_parent(self, comment_service, test_project, test_user):
        parent = comment_service.add_comment(test_project.id, test_user, "question")

        reply = comment_service.add_comment(
            test_project.id, test_user, "answer", parent_id=parent.id
        )

        assert reply.parent_id == parent.id
        assert list(parent.replies.all()) == [reply]

    def test_comment_with_inline_file(
        self, comment_service, test_project, test_user, png_payload
    ):
        comment = comment_service.add_comment(
            test_project.id,
            test_user,
            "see attachment",
            files=[{"name": "diagram.png", "data": png_payload}],
        )

        assert len(comment.files) == 1
        assert comment.files[0]["url"].endswith("diagram.png")

    def test_empty_text_is_rejected(self, comment_service, test_project, test_user):
        with pytest.raises(ValidationFailed):
            comment_service.add_comment(test_project.id, test_user, "   ")

    def test_unknown_parent_is_not_found(self, comment_service, test_project, test_user):
        with pytest.raises(NotFound):
            comment_service.add_comment(test_project.id, test_user, "re", parent_id=999)

    def test_stranger_cannot_comment(self, comment_service, test_project, test_user2):
        with pytest.raises(Forbidden):
            comment_service.add_comment(test_project.id, test_user2, "hi")

    def test_author_deletes_own_comment(
        self, comment_service, test_project, test_user2, guest_member
    ):
        comment = comment_service.add_comment(test_project.id, test_user2, "mine")

        comment_service.delete_comment(test_project.id, comment.id, test_user2)

        test_project.refresh_from_db()
        assert test_project.comment_ids == []
        assert not Comment.objects.filter(pk=comment.id).exists()

    def test_guest_cannot_delete_foreign_comment(
        self, comment_service, test_project, test_user, test_user2, guest_member
    ):
        comment = comment_service.add_comment(test_project.id, test_user, "admin note")

        with pytest.raises(Forbidden):
            comment_service.delete_comment(test_project.id, comment.id, test_user2)

    def test_admin_deletes_any_comment(
        self, comment_service, test_project, test_user, test_user2, guest_member
    ):
        comment = comment_service.add_comment(test_project.id, test_user2, "guest note")

        comment_service.delete_comment(test_project.id, comment.id, test_user)

        assert not Comment.objects.filter(pk=comment.id).exists()

    def test_list_follows_reference_order(self, comment_service, test_project, test_user):
        first = comment_service.add_comment(test_project.id, test_user, "1")
        second = comment_service.add_comment(test_project.id, test_user, "2")

        comments = comment_service.list_comments(test_project.id, test_user)

        assert [c.id for c in comments] == [second.id, first.id]
