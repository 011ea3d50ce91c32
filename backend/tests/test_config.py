import pytest
from pydantic import ValidationError

from content_approval.core.config import DEFAULT_TEMPLATES, Settings, absint
from content_approval.services import notifications


def test_workflow_config_from_env(monkeypatch):
    monkeypatch.setenv("MIN_REQUIRED_REVIEWS", "3")
    monkeypatch.setenv("PUBLISH_WITHOUT_APPROVAL", "false")
    monkeypatch.setenv("WORKFLOW_CONTENT_TYPES", "post, news ,")
    monkeypatch.setenv("ROLES_CAN_APPROVE", "editor")
    monkeypatch.setenv("HISTORY_RETENTION_DAYS", "-14")
    monkeypatch.setenv("PENDING_REVIEW_FREQUENCY", "fortnightly")

    cfg = Settings().workflow_config()

    assert cfg.min_required_reviews == 3
    assert cfg.publish_without_approval is False
    assert cfg.content_types == frozenset({"post", "news"})
    assert cfg.roles_can_approve == frozenset({"editor"})
    assert cfg.history_retention_days == 14
    assert cfg.pending_review_frequency == "none"


def test_defaults_match_the_admin_defaults(monkeypatch):
    for name in ("MIN_REQUIRED_REVIEWS", "PUBLISH_WITHOUT_APPROVAL", "HISTORY_RETENTION_DAYS"):
        monkeypatch.delenv(name, raising=False)
    cfg = Settings().workflow_config()
    assert cfg.min_required_reviews == 1
    assert cfg.publish_without_approval is True
    assert cfg.history_retention_days == 30
    assert cfg.unassigned_approval_policy == "reject"


def test_template_overrides_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("ASK_FOR_REVIEW_SUBJECT", "Please look at {post_title}")
    cfg = Settings().workflow_config()
    assert cfg.template("ask_for_review").subject == "Please look at {post_title}"
    assert cfg.template("ask_for_review").message == DEFAULT_TEMPLATES["ask_for_review"].message
    assert cfg.template("approve_review") == DEFAULT_TEMPLATES["approve_review"]
    assert cfg.template("unknown") is None


@pytest.mark.parametrize(
    "name,value",
    [("MIN_REQUIRED_REVIEWS", "-1"), ("UNASSIGNED_APPROVAL_POLICY", "shrug")],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings()


def test_production_rejects_sqlite_and_debug(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./x.db")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET_KEY", "k" * 40)
    with pytest.raises(ValidationError):
        Settings()


def test_absint():
    assert absint("12") == 12
    assert absint(-3) == 3
    assert absint("") == 0
    assert absint(None) == 0


def test_render_escapes_values_but_not_post_list():
    out = notifications.render(
        "<p>{post_title}</p>{post_list}",
        {"post_title": "<b>Hi</b>", "post_list": "<p>- Post</p>"},
    )
    assert out == "<p>&lt;b&gt;Hi&lt;/b&gt;</p><p>- Post</p>"
    assert notifications.strip_tags(out) == "<b>Hi</b>- Post"
